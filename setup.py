#!/usr/bin/env python
"""JMeter Copilot: GitHub Copilot chat for generating JMeter test plans."""

from setuptools import find_packages, setup

VERSION = "0.1.0b1"
CLASSIFIERS = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "License :: OSI Approved :: MIT License",
    "Topic :: Software Development :: Testing :: Traffic Generation",
]

DEPENDENCIES = [
    # CLIError is the base of every chat-core error
    "knack>=0.11.0",
    "pyyaml>=6.0",
    "requests>=2.28.0",
    "rich>=13.0.0",
]

TEST_DEPENDENCIES = [
    "pytest>=7.0",
]

setup(
    name="jmeter-copilot",
    version=VERSION,
    description="GitHub Copilot chat session for generating and loading Apache JMeter test plans",
    long_description="Streams Copilot replies, extracts JMeter XML from them, and loads the result as a test-plan tree.",
    license="MIT",
    author="",
    author_email="",
    classifiers=CLASSIFIERS,
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=DEPENDENCIES,
    extras_require={"test": TEST_DEPENDENCIES},
)
