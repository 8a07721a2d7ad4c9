# Copyright (c) Microsoft. All rights reserved.

import logging

from .exceptions import AIGlueException

__all__ = ["get_logger", "setup_logging"]


def setup_logging(level: int = logging.INFO) -> None:
    """Setup the logging configuration for aiglue and the samples."""
    logging.basicConfig(
        level=level,
        format="[%(asctime)s - %(pathname)s:%(lineno)d - %(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def get_logger(name: str = "aiglue") -> logging.Logger:
    """Get a logger with the specified name, defaulting to 'aiglue'.

    Args:
        name (str): The name of the logger. Defaults to 'aiglue'.

    Returns:
        logging.Logger: The configured logger instance.
    """
    if not name.startswith("aiglue"):
        raise AIGlueException("Logger name must start with 'aiglue'.")
    return logging.getLogger(name)
