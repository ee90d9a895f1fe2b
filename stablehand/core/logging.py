# stablehand/core/logging.py
import logging
import os
import sys
from datetime import datetime

# Module-level default log level, can be changed by setup_logging()
_default_level: int = logging.INFO


class ColoredFormatter(logging.Formatter):
    """Colored formatter for stablehand logging"""

    # ANSI color codes
    COLORS = {
        'RESET': '\033[0m',
        'LIGHT_BLUE': '\033[94m',
        'WHITE': '\033[97m',
        'GRAY': '\033[90m',
        'GREEN': '\033[92m',
        'YELLOW': '\033[93m',
        'RED': '\033[91m',
        'BRIGHT_RED': '\033[1;91m',
    }

    LEVEL_COLORS = {
        'DEBUG': COLORS['GRAY'],
        'INFO': COLORS['GREEN'],
        'WARNING': COLORS['YELLOW'],
        'ERROR': COLORS['RED'],
        'CRITICAL': COLORS['BRIGHT_RED'],
    }

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        # 'stablehand.forking' -> 'forking'
        component = record.name.split('.')[-1] if '.' in record.name else record.name

        # Forked children share a terminal with the supervisor, so every line
        # carries the pid of the process that emitted it.
        component_padded = f'[{component}]'.ljust(12)
        pid_padded = f'[{record.process or os.getpid()}]'.ljust(10)
        level_padded = f'[{record.levelname}]'.ljust(10)

        level_color = self.LEVEL_COLORS.get(record.levelname, self.COLORS['WHITE'])

        # Format: [time] [component] [pid]  [level]  message
        formatted = (
            f"{self.COLORS['LIGHT_BLUE']}[{time_str}]{self.COLORS['RESET']} "
            f"{self.COLORS['WHITE']}{component_padded}{self.COLORS['RESET']}"
            f"{self.COLORS['GRAY']}{pid_padded}{self.COLORS['RESET']}"
            f"{level_color}{level_padded}{self.COLORS['RESET']}"
            f"{self.COLORS['WHITE']}{record.getMessage()}{self.COLORS['RESET']}"
        )

        if record.exc_info:
            formatted += '\n' + self.formatException(record.exc_info)

        return formatted


def set_default_level(level: int) -> None:
    """Set the default log level for new loggers."""
    global _default_level
    _default_level = level


def get_logger(component_name: str) -> logging.Logger:
    """Get a logger for the specified component."""
    logger = logging.getLogger(f'stablehand.{component_name}')

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter())
        handler.setLevel(_default_level)
        logger.addHandler(handler)
        logger.setLevel(_default_level)

        # Prevent duplicate logs from parent loggers
        logger.propagate = False

    return logger


def setup_logging(loglevel: str | int) -> None:
    """Apply a log level to the default and to every stablehand logger already created."""
    if isinstance(loglevel, str):
        level = getattr(logging, loglevel.upper(), logging.INFO)
    else:
        level = loglevel
    set_default_level(level)

    for name in logging.Logger.manager.loggerDict:
        if isinstance(name, str) and name.startswith('stablehand.'):
            lgr = logging.getLogger(name)
            lgr.setLevel(level)
            for handler in lgr.handlers:
                handler.setLevel(level)
