"""
Tests for the logging helpers
"""

import logging

import pytest

from RobustMatching.logger import (
    ROOT_LOGGER_NAME,
    setup_logger,
    get_logger,
    configure_root_logger,
    disable_console_logging,
    set_level,
    format_stage_counts,
)


def _reset():
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def reset_root_logger():
    _reset()
    yield
    _reset()


def test_module_loggers_are_children_of_the_package_logger():
    assert get_logger("matcher").name == "RobustMatching.matcher"
    assert get_logger("matcher").parent is logging.getLogger(ROOT_LOGGER_NAME)


def test_setup_logger_writes_to_file(tmp_path):
    log_file = tmp_path / "logs" / "matching.log"
    logger = setup_logger(ROOT_LOGGER_NAME, level="DEBUG", log_file=str(log_file), console=False)

    get_logger("verifier").info("Number of matched points (after RANSAC): 42")
    for handler in logger.handlers:
        handler.flush()

    content = log_file.read_text()
    assert "[INFO] [RobustMatching.verifier] Number of matched points (after RANSAC): 42" in content


def test_setup_logger_does_not_duplicate_handlers():
    first = setup_logger(ROOT_LOGGER_NAME)
    second = setup_logger(ROOT_LOGGER_NAME, level="DEBUG")

    assert first is second
    assert len(second.handlers) == 1
    # already configured, level untouched without force
    assert second.level == logging.INFO


def test_configure_root_logger_reconfigures(tmp_path):
    setup_logger(ROOT_LOGGER_NAME, level="INFO")
    logger = configure_root_logger(level="DEBUG", log_file=str(tmp_path / "run.log"))

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2


def test_disable_console_logging(tmp_path):
    configure_root_logger(level="INFO", log_file=str(tmp_path / "run.log"))
    disable_console_logging()

    handlers = logging.getLogger(ROOT_LOGGER_NAME).handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.FileHandler)


def test_set_level():
    setup_logger(ROOT_LOGGER_NAME, level="INFO")
    set_level("warning")
    assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.WARNING


def test_format_stage_counts():
    counts = {
        'keypoints1': 512, 'keypoints2': 498,
        'raw1': 512, 'raw2': 498,
        'ratio1': 141, 'ratio2': 137,
        'symmetric': 118, 'inliers': 104,
    }
    assert format_stage_counts(counts) == (
        "keypoints 512/498, knn 512/498, ratio test 141/137, symmetric 118, inliers 104"
    )
    assert format_stage_counts({'symmetric': 3}) == "symmetric 3"
    assert format_stage_counts({}) == ""
