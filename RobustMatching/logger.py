"""
Logging for RobustMatching

Every module logs through a child of the "RobustMatching" logger
(``get_logger("matcher")`` -> "RobustMatching.matcher"). Nothing is attached
to the package logger until a driver calls configure_root_logger() or
setup_logger(), so library users keep control of their logging setup.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional


ROOT_LOGGER_NAME = "RobustMatching"

# [2025-10-31 10:15:30] [INFO] [RobustMatching.verifier] Number of matched points (after RANSAC): 85
LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _build_handlers(console: bool, log_file: Optional[str]) -> List[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []

    if console:
        handlers.append(logging.StreamHandler(sys.stdout))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode='a'))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    force: bool = False
) -> logging.Logger:
    """
    Attach console and/or file handlers to a logger

    A logger that already has handlers is returned untouched unless
    force=True, in which case its handlers are closed and replaced.

    Args:
        name: Logger name
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a log file (appended to)
        console: Log to stdout
        force: Replace an existing configuration

    Returns:
        The configured logger

    Example:
        >>> logger = setup_logger(level='DEBUG', log_file='logs/matching.log')
    """
    logger = logging.getLogger(name)
    if logger.handlers and not force:
        return logger

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(getattr(logging, level.upper()))
    for handler in _build_handlers(console, log_file):
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger of one pipeline module

    Args:
        name: Module name ('matcher', 'verifier', 'estimation', 'config', ...)
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_root_logger(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """(Re)configure the package logger; meant to be called once by a driver script"""
    return setup_logger(ROOT_LOGGER_NAME, level=level, log_file=log_file, console=True, force=True)


def disable_console_logging():
    """Disable console output, keep only file logging"""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        if isinstance(handler, logging.StreamHandler) and handler.stream == sys.stdout:
            logger.removeHandler(handler)


def set_level(level: str):
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(getattr(logging, level.upper()))


def format_stage_counts(stage_counts: Dict[str, int]) -> str:
    """
    One-line summary of how many correspondences survived each stage

    Pairs of per-image (or per-direction) counts are shown as "a/b", e.g.
    "keypoints 512/498, knn 512/498, ratio test 141/137, symmetric 118, inliers 104".
    Missing stages are left out.
    """
    stages = [
        ('keypoints', 'keypoints1', 'keypoints2'),
        ('knn', 'raw1', 'raw2'),
        ('ratio test', 'ratio1', 'ratio2'),
        ('symmetric', 'symmetric', None),
        ('inliers', 'inliers', None),
    ]
    parts = []
    for label, first, second in stages:
        if first not in stage_counts:
            continue
        if second is None:
            parts.append(f"{label} {stage_counts[first]}")
        else:
            parts.append(f"{label} {stage_counts[first]}/{stage_counts.get(second, 0)}")
    return ", ".join(parts)
