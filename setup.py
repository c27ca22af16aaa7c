"""
Setup configuration for APIScout package.
"""

from setuptools import setup, find_packages

setup(
    name="apiscout",
    version="1.0.0",
    description="API Endpoint Discovery Crawler",
    author="APIScout Team",
    python_requires=">=3.11",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"apiscout": ["data/catalogs.yaml"]},
    install_requires=[
        "playwright>=1.40.0",
        "aiohttp>=3.9.1",
        "structlog>=23.2.0",
        "click>=8.1.7",
        "rich>=13.7.0",
        "pydantic>=2.5.2",
        "PyYAML>=6.0.1",
        "beautifulsoup4>=4.12.2",
        "lxml>=4.9.3",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
            "pytest-cov>=4.1.0",
            "black>=23.12.1",
            "flake8>=6.1.0",
            "mypy>=1.7.1",
        ],
    },
    entry_points={
        "console_scripts": [
            "apiscout=apiscout.cli:cli",
        ],
    },
)
