"""Logging utilities for the agent runtime."""

import logging
import sys

_LOGGER_NAME = "agent_runtime"
_DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger under the runtime's root logger.

    Module names of the package (``agent_runtime.session.bounded``) are used as
    they are; any other name becomes a child of ``agent_runtime``.

    Args:
        name: Optional sub-logger name. If None, returns the root runtime logger.

    Returns:
        The requested logger.
    """
    if not name:
        return logging.getLogger(_LOGGER_NAME)
    if name == _LOGGER_NAME or name.startswith(f"{_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")


class FieldsFormatter(logging.Formatter):
    """Appends the structured ``fields`` passed via ``extra`` as ``key=value`` pairs.

    Example:
        >>> logger.warning("Server unavailable", extra={"fields": {"server": "docs"}})
        ... - WARNING - Server unavailable [server=docs]
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = getattr(record, "fields", None)
        if not fields:
            return message
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        return f"{message} [{rendered}]"


def setup_logging(level: int = logging.INFO, format_str: str = _DEFAULT_FORMAT) -> None:
    """Attach a stdout handler to the runtime's root logger.

    Meant for applications embedding the runtime; the runtime itself never
    configures handlers. Calling it again is a no-op.

    Args:
        level: Logging level.
        format_str: Log format string; structured fields are appended to it.
    """
    logger = logging.getLogger(_LOGGER_NAME)

    if any(not isinstance(h, logging.NullHandler) for h in logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(FieldsFormatter(format_str))
    logger.addHandler(handler)
    logger.setLevel(level)


logging.getLogger(_LOGGER_NAME).addHandler(logging.NullHandler())
