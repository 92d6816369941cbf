"""
Setup script for uiflow-engine.

uiflow-engine decides which UI features a user gets to see. It serves
three roles:

1. Dependency Engine - Unlock elements once usage conditions are met
2. Rule Engine - Periodic behavioural rules (unlocks, tutorials, events)
3. Experiments - Deterministic A/B variant assignment and metrics

The 'uiflow' command is the developer entry point for validating,
simulating and replaying flow configurations.
"""

from setuptools import find_packages, setup

setup(
    name="uiflow-engine",
    version="1.0.0",
    description="Progressive feature disclosure: dependency, rule and journey engine",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="UIFlow",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "uiflow=uiflow.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: User Interfaces",
    ],
    keywords="progressive-disclosure feature-flags onboarding ab-testing rules",
)
