"""Startup banner for stablehand."""

from __future__ import annotations

import sys
from typing import TextIO

from stablehand.core.models.worker import WorkerConfig
from stablehand.core.utils.url import mask_redis_url


class Colors:
    """ANSI escape codes for terminal colors."""

    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIMMED = '\033[2m'
    WHITE = '\033[37m'
    BRIGHT_WHITE = '\033[97m'
    BRIGHT_CYAN = '\033[96m'
    BRIGHT_YELLOW = '\033[93m'


def _color(text: str, *codes: str) -> str:
    if not codes:
        return text
    return ''.join(codes) + text + Colors.RESET


LOGO_TEXT = r"""
     _        _     _      _                     _
 ___| |_ __ _| |__ | | ___| |__   __ _ _ __   __| |
/ __| __/ _` | '_ \| |/ _ \ '_ \ / _` | '_ \ / _` |    {version}
\__ \ || (_| | |_) | |  __/ | | | (_| | | | | (_| |    job queue worker
|___/\__\__,_|_.__/|_|\___|_| |_|\__,_|_| |_|\__,_|    and process supervisor
"""


def get_version() -> str:
    """Get stablehand version from package metadata."""
    try:
        from importlib.metadata import version

        return version('stablehand')
    except Exception:
        return 'dev'


def _format_seconds(seconds: float) -> str:
    if seconds >= 60:
        mins, secs = divmod(int(seconds), 60)
        return f'{mins}m{secs}s' if secs else f'{mins}m'
    return f'{seconds:g}s'


def _write_section_header(lines: list[str], name: str) -> None:
    header = _color(name, Colors.BRIGHT_CYAN, Colors.BOLD)
    lines.append(f'[{header}]')


def _write_kv(lines: list[str], key: str, value: str) -> None:
    prefix = _color('.>', Colors.DIMMED)
    padded_key = f'{key}:'.ljust(22)
    colored_key = _color(padded_key, Colors.WHITE, Colors.BOLD)
    colored_value = _color(value, Colors.BRIGHT_WHITE)
    lines.append(f'  {prefix} {colored_key} {colored_value}')


def print_banner(
    config: WorkerConfig,
    *,
    redis_url: str,
    reserver_description: str,
    mode: str,
    file: TextIO | None = None,
) -> None:
    """Print startup banner with the effective worker configuration."""
    if file is None:
        file = sys.stdout

    lines: list[str] = []
    logo = LOGO_TEXT.replace('{version}', f'v{get_version()}')
    lines.append(_color(logo, Colors.BRIGHT_YELLOW, Colors.BOLD))

    _write_section_header(lines, 'config')
    _write_kv(lines, 'mode', mode)
    _write_kv(lines, 'queues', reserver_description)
    _write_kv(lines, 'engine', mask_redis_url(redis_url))
    interval = _format_seconds(config.interval)
    _write_kv(lines, 'interval', f'{interval} (busy poll)' if config.interval == 0 else interval)
    lines.append('')

    if mode == 'forking':
        _write_section_header(lines, 'pool')
        _write_kv(lines, 'processes', str(config.num_workers))
        _write_kv(lines, 'startup_stagger', _format_seconds(config.max_startup_interval))
        _write_kv(lines, 'shutdown_timeout', _format_seconds(config.shutdown_timeout))
        lines.append('')

    print('\n'.join(lines), file=file)
