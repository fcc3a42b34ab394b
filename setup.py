from setuptools import setup, find_packages

setup(
    name="funcstack",
    version="0.1.0",
    description="Dependency-ordered provisioning of an Azure function app, with the functions it hosts",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="Funcstack Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "click>=8.0.0",
        "pyyaml>=6.0",
        "azure-functions>=1.17.0",
    ],
    extras_require={
        "pulumi": [
            "pulumi>=3.0.0",
            "pulumi-azure-native>=3.0.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "funcstack=funcstack.cli.main:cli",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
