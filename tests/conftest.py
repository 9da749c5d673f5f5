from __future__ import annotations

import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    # cli.main binds a handler to the current sys.stderr, which capsys swaps per test.
    yield
    logger = logging.getLogger("calbridge")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
