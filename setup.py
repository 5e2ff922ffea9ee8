# setup.py
from setuptools import setup, find_packages

setup(
    name="kiln",
    version="0.1.0",
    description="Execution core of a procedural build language with effect-tracked caching",
    packages=find_packages(include=["kiln", "kiln.*"]),
    python_requires=">=3.10",
    install_requires=[],
    extras_require={
        "test": ["pytest", "hypothesis"],
    },
    zip_safe=False,
)
