"""
Logging configuration for the CodeFlow API server.
"""

import logging

LOGGER_NAME = "codeflow"


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure the console handler for the API server.

    Modules log through ``logging.getLogger(__name__)``; records from the
    ``api``, ``db`` and ``integrations`` packages propagate to the root logger
    configured here.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The application logger
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Replace only handlers we installed ourselves so pytest's capture stays.
    for handler in list(root.handlers):
        if getattr(handler, "_codeflow_handler", False):
            root.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler._codeflow_handler = True  # type: ignore[attr-defined]
    root.addHandler(console_handler)

    logger = logging.getLogger(LOGGER_NAME)
    logger.debug("Logging initialized at level %s", logging.getLevelName(level))
    return logger
