from __future__ import annotations

from pathlib import Path

from setuptools import find_packages, setup

# Read README for long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    # Package metadata
    name="starlit",
    version="1.0.0",
    author="Starlit Journals",
    description="Journaling backend with a login-driven engagement and mail engine",
    long_description=long_description,
    long_description_content_type="text/markdown",
    # Package discovery
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"starlit.catalog": ["data/*.yaml"]},
    include_package_data=True,
    # Dependencies
    install_requires=[
        "fastapi>=0.104.1",
        "uvicorn>=0.24.0",
        "pydantic>=2.5.0",
        "python-dotenv>=1.0.0",
        "PyYAML>=6.0",
        "cachetools>=5.3.0",
    ],
    # Optional dependencies (for development)
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "httpx>=0.25.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "httpx>=0.25.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "ruff>=0.1.0",
            "types-PyYAML",
            "types-cachetools",
        ],
    },
    # CLI commands
    entry_points={
        "console_scripts": [
            "starlit-api=starlit.api:main",
        ],
    },
    # Python version requirement
    python_requires=">=3.11",
    # PyPI classifiers
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
)
