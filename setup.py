"""
Setup script for fluency-scheduler.

Fluency Scheduler is the adaptive fact-learning engine behind the
multiplication fluency trainer. It serves three roles:

1. Scheduler - Decides which fact to ask next and how it moves through stages
2. Learner Record - Versioned, migratable persistence of per-fact progress
3. Terminal Trainer - A small CLI that drives the learning cycle end to end

The 'fluency' command is the primary entry point.
"""

from setuptools import find_packages, setup

setup(
    name="fluency-scheduler",
    version="4.0.0",
    description="Adaptive multiplication fact-learning scheduler with a terminal trainer",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Fluency Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fluency=src.fluency.fluency_cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition fluency multiplication education scheduler",
)
