"""Setuptools build hooks for einloop."""

from __future__ import annotations

from setuptools import setup

# Metadata lives in pyproject.toml. The package is pure Python (plus a lark
# grammar file), so the default wheel command produces a py3-none-any wheel.
setup()
