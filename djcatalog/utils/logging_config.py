"""
Logging Configuration for DJ Catalog

This module provides centralized logging configuration for the command line
tools. Library code only asks for component loggers through ``get_logger``;
handlers are installed once by ``setup_logging``.
"""

import os
import sys
import time
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Any, Optional


LOGGER_PREFIX = 'djcatalog'


class ColoredFormatter(logging.Formatter):
    """Console formatter that tints the level name by severity"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class CatalogLogger:
    """Centralized logger configuration for DJ Catalog"""

    def __init__(self, log_dir: Optional[str] = None, console_level: str = "INFO",
                 file_level: str = "DEBUG", enable_console: bool = True,
                 enable_file: bool = True):
        """
        Initialize the logging system

        Args:
            log_dir: Directory for log files (default: ~/.djcatalog/logs)
            console_level: Console logging level
            file_level: File logging level
            enable_console: Whether to enable console logging
            enable_file: Whether to write the rotating log file
        """
        self.log_dir = log_dir or os.path.expanduser('~/.djcatalog/logs')
        self.console_level = getattr(logging, console_level.upper())
        self.file_level = getattr(logging, file_level.upper())
        self.enable_console = enable_console
        self.enable_file = enable_file
        self._stage_started: Dict[str, float] = {}

        if self.enable_file:
            Path(self.log_dir).mkdir(parents=True, exist_ok=True)

        self._setup_package_logger()
        self._setup_component_loggers()

    def _setup_package_logger(self):
        """Attach handlers to the package logger"""
        package_logger = logging.getLogger(LOGGER_PREFIX)
        package_logger.setLevel(logging.DEBUG)
        package_logger.handlers.clear()
        package_logger.propagate = False

        if self.enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(self.console_level)
            console_handler.setFormatter(ColoredFormatter(
                '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                datefmt='%H:%M:%S'
            ))
            package_logger.addHandler(console_handler)

        if self.enable_file:
            main_log_file = os.path.join(self.log_dir, 'djcatalog.log')
            file_handler = logging.handlers.RotatingFileHandler(
                main_log_file, maxBytes=10*1024*1024, backupCount=5, encoding='utf-8'
            )
            file_handler.setLevel(self.file_level)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            package_logger.addHandler(file_handler)

    def _setup_component_loggers(self):
        """Apply per-component levels for importers, matcher and storage"""
        components = {
            f'{LOGGER_PREFIX}.engine': logging.INFO,
            f'{LOGGER_PREFIX}.normalizer': logging.INFO,
            f'{LOGGER_PREFIX}.cleaner': logging.DEBUG,
            f'{LOGGER_PREFIX}.matcher': logging.DEBUG,
            f'{LOGGER_PREFIX}.canonical': logging.DEBUG,
            f'{LOGGER_PREFIX}.index': logging.INFO,
            f'{LOGGER_PREFIX}.storage': logging.INFO,
            f'{LOGGER_PREFIX}.importers': logging.INFO,
        }

        for component, level in components.items():
            logging.getLogger(component).setLevel(level)

    def get_logger(self, name: str) -> logging.Logger:
        """Logger under the djcatalog namespace for one component"""
        return get_logger(name)

    def log_stage_start(self, stage: str, options: Dict[str, Any] = None):
        """Log start of a batch stage"""
        logger = self.get_logger('engine')
        self._stage_started[stage] = time.time()
        logger.info(f"Starting {stage}")
        if options:
            logger.debug(f"  Options: {options}")

    def log_stage_complete(self, stage: str, summary: Dict[str, Any]):
        """Log completion of a batch stage with its summary counters"""
        logger = self.get_logger('engine')
        started = self._stage_started.pop(stage, None)
        elapsed = f" in {time.time() - started:.2f}s" if started else ""
        counters = ', '.join(f"{k}={v}" for k, v in summary.items() if not isinstance(v, (list, dict)))
        logger.info(f"Completed {stage}{elapsed}: {counters}")

    def log_error(self, component: str, error: Exception, context: Dict[str, Any] = None):
        """Log a failed catalog stage together with its context"""
        logger = self.get_logger(component)

        logger.error(f"Error in {component}: {type(error).__name__}: {str(error)}")
        if context:
            logger.error(f"  Context: {context}")
        logger.debug("Stack trace:", exc_info=True)


# Global logger instance
_logger_instance = None


def setup_logging(log_dir: Optional[str] = None, console_level: str = "INFO",
                  file_level: str = "DEBUG", enable_console: bool = True,
                  enable_file: bool = True) -> CatalogLogger:
    """Install the process-wide catalog logger (CLI only)"""
    global _logger_instance
    _logger_instance = CatalogLogger(log_dir, console_level, file_level, enable_console, enable_file)
    return _logger_instance


def get_logger(name: str = 'main') -> logging.Logger:
    """Get a component logger under the ``djcatalog`` namespace"""
    if name.startswith(LOGGER_PREFIX):
        return logging.getLogger(name)
    return logging.getLogger(f'{LOGGER_PREFIX}.{name}')


def get_app_logger() -> Optional[CatalogLogger]:
    """Get the application logger instance, if logging has been set up"""
    return _logger_instance
