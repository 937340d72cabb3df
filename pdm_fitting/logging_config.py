"""
Logging Configuration
Handlers for command-line runs. Library modules only create
``logging.getLogger(__name__)`` loggers and never attach handlers.
"""
import logging
import sys
from typing import Optional, Union

PACKAGE_LOGGER = "pdm_fitting"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%H:%M:%S'

# Third-party loggers kept at WARNING even when the package runs at DEBUG
QUIET_LOGGERS = ("h5py",)


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attaches console and optional file handlers to the 'pdm_fitting' logger.

    Python warnings (numpy RuntimeWarnings from ill-conditioned fits, for
    example) are routed through the same handlers, so a log file holds the
    whole run.

    Args:
        level: Logging level as int or name ('DEBUG', 'info', ...)
        log_file: Optional path to save logs to a file.

    Returns:
        The configured package logger.
    """
    level = _resolve_level(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logger = logging.getLogger(PACKAGE_LOGGER)
    # Repeated calls (tests, several CLI invocations) must not stack handlers
    for target in (logger, logging.getLogger("py.warnings")):
        target.setLevel(level)
        for old in list(target.handlers):
            target.removeHandler(old)
            old.close()
        for handler in handlers:
            target.addHandler(handler)
    logging.captureWarnings(True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.debug(f"Logging initialized at {logging.getLevelName(level)}.")
    return logger
