"""
OhMyCook - Layered Loggers

Thin wrapper that namespaces loggers as ``ohmycook.<layer>.<name>`` so that the
core, service, api and llm layers can be filtered independently.
"""

import logging

from config.logging import ROOT_LOGGER_NAME


class GenericLogger:
    """Layer-scoped logger used across the code base"""

    def __init__(self, layer: str, name: str):
        self.layer = layer
        self.name = name
        self._logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{layer}.{name}")

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, message: str, *args, **kwargs) -> None:
        self._logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self._logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self._logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self._logger.error(message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        self._logger.exception(message, *args, **kwargs)
