from os.path import exists

from setuptools import find_packages, setup

description = open("README.md").read() if exists("README.md") else ""

setup(
    name="sqlunit",
    version="0.1.0",
    description="Unit tests for declarative SQL models",
    long_description=description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["sqlunit", "sqlunit.*"]),
    entry_points={
        "console_scripts": [
            "sqlunit = sqlunit.cli.main:cli",
        ],
    },
    python_requires=">=3.9",
    install_requires=[
        "click",
        "duckdb!=0.10.3",
        "jinja2",
        "numpy",
        "pandas>=2.0.0",
        "pydantic>=2.0.0",
        "rich",
        "ruamel.yaml",
        "sqlglot~=26.3.9",
    ],
    extras_require={
        "dev": [
            "mypy~=1.13.0",
            "pandas-stubs",
            "pytest",
            "pytest-mock",
            "ruff~=0.7.0",
            "typing-extensions",
        ],
    },
    classifiers=[
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: SQL",
        "Programming Language :: Python :: 3 :: Only",
    ],
)
