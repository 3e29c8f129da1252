from __future__ import annotations

import logging

import pytest

from persrec.utils import LOG_LEVEL_ENV, setup_logging


@pytest.fixture
def restore_package_logger():
    pkg_logger = logging.getLogger("persrec")
    previous = pkg_logger.level
    yield
    pkg_logger.setLevel(previous)


def test_setup_logging_sets_package_level(restore_package_logger) -> None:
    pkg_logger = setup_logging("debug")
    assert pkg_logger.name == "persrec"
    assert pkg_logger.level == logging.DEBUG
    assert logging.getLogger("persrec.socreg.train").isEnabledFor(logging.DEBUG)


def test_setup_logging_reads_level_from_environment(monkeypatch, restore_package_logger) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "WARNING")
    assert setup_logging().level == logging.WARNING
    # A second call only adjusts the level.
    handlers = list(logging.getLogger().handlers)
    assert setup_logging("ERROR").level == logging.ERROR
    assert logging.getLogger().handlers == handlers
