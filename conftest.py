"""Expose the shared fixtures in tests/conftest.py to every test package."""

pytest_plugins = ["tests.conftest"]
