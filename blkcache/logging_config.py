"""
Logging configuration for blkcache.

Library code only logs through module loggers under ``blkcache``; the CLI
decides how much of it reaches the terminal.
"""

import logging
import sys
import warnings


def configure_quiet_mode(quiet: bool = True):
    """
    Keep blkcache logging to warnings and above.

    Args:
        quiet: If True, suppress debug/info output. If False, show everything.
    """
    logger = logging.getLogger("blkcache")
    if quiet:
        warnings.filterwarnings("ignore")
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.NOTSET)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    # Re-enable warnings
    warnings.filterwarnings("default")

    # Configure root logger for debug output
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("blkcache").setLevel(logging.DEBUG)
