"""Pytest configuration: load the shared Redis fixtures."""

pytest_plugins = ["session_store.pytest_fixtures"]
