import os
from setuptools import setup, find_packages

setup(
    name="secaggplus",
    version="1.0.0",
    description="secaggplus — client-side SecAgg+ secure aggregation for federated learning",
    long_description=open("README.md").read() if os.path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Octomil",
    packages=find_packages(include=["secaggplus", "secaggplus.*"]),
    install_requires=[
        "click>=8.0.0",
        "cryptography>=41.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.21.0",
        ],
        "fuzz": [
            "atheris>=2.3.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.21.0",
            "ruff>=0.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "secaggplus=secaggplus.cli:main",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security :: Cryptography",
    ],
)
