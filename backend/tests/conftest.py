"""Pytest configuration and fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def _debug_sync_logging(caplog):
    """Capture the sync engine's debug output so failing tests show it."""
    caplog.set_level(logging.DEBUG, logger="app.realtime")
