"""
Logging configuration for erquant.

All erquant loggers live under the ``erquant`` namespace and write to stderr
through a Rich handler, so matrices written to stdout stay clean.
"""

import logging
from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "erquant"

console = Console(stderr=True)


def _rich_handler() -> RichHandler:
    handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def get_logger(name: str = ROOT_LOGGER, level: str = "INFO") -> logging.Logger:
    """
    Get an erquant logger with Rich formatting.

    Child loggers (``erquant.core.matrix``) propagate to the ``erquant`` logger,
    which owns the only handler.

    Args:
        name: Logger name, prefixed with ``erquant.`` when not already
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"

    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        root.addHandler(_rich_handler())
        root.setLevel(getattr(logging, level.upper(), logging.INFO))
        root.propagate = False

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def set_verbose(logger: logging.Logger, verbose: bool = True) -> None:
    """
    Switch the logger (and the erquant root) to DEBUG when verbose is True.

    Args:
        logger: Logger to configure
        verbose: If True, set to DEBUG; otherwise leave unchanged
    """
    if verbose:
        logger.setLevel(logging.DEBUG)
        logging.getLogger(ROOT_LOGGER).setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")
