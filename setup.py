#!/usr/bin/env python
"""Setup script for tools that do not support PEP 517/518 builds.

Project metadata lives in pyproject.toml.
"""

from setuptools import setup

if __name__ == "__main__":
    setup()
