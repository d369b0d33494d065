"""
Setup script for cadence.

Cadence is the practice telemetry and leveling engine behind a
self-paced learning app. It serves three roles:

1. Session Tracker - Infers what the learner is practicing and accounts
   engaged, paused and idle time
2. Quality Scorer - Scores each session and keeps a journal and daily rollups
3. Difficulty Adapter - Turns outcomes into a stable per-skill level (1-5)

The 'cadence' command inspects the persisted state from the terminal.
"""

from setuptools import find_packages, setup

setup(
    name="cadence-practice",
    version="1.0.0",
    description="Adaptive practice telemetry and difficulty leveling engine",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Cadence",
    packages=find_packages(include=["cadence", "cadence.*"]),
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
            "cadence=cadence.cli.main:main",
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
    keywords="learning practice telemetry adaptive-difficulty education",
)
