"""Pytest configuration and fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def _debug_logging():
    """Run every test with pushfeed debug logging on, so payload logging paths execute."""
    logger = logging.getLogger("pushfeed")
    previous = logger.level
    logger.setLevel(logging.DEBUG)
    yield
    logger.setLevel(previous)
