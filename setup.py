from setuptools import setup, find_packages

setup(
    name="strongin",
    version="0.1.0",
    packages=find_packages(include=["strongin", "strongin.*"]),
    install_requires=[
        "torch",
        "scipy",
        "numpy",
        "joblib",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.9",
    description="sequential and distributed Strongin global search for one-dimensional Lipschitz functions",
)
