#!/usr/bin/env python3
"""Setup script for the SonarCloud MCP server."""
from setuptools import setup, find_packages

setup(
    name="sonarcloud_mcp",
    version="1.0.0",
    description="Model Context Protocol server for SonarCloud and SonarQube",
    author="SonarCloud MCP Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "httpx>=0.24.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=6.2.5",
        ],
    },
    entry_points={
        "console_scripts": [
            "sonarcloud-mcp=sonarcloud_mcp.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
