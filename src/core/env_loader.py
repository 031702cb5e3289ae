#!/usr/bin/env python3
"""
.env support for the relay.

Variables from a ``.env`` file at the project root are merged into the
process environment on import. Real environment variables always win, so a
deployment can override anything the file sets.
"""

import logging
import os
from pathlib import Path
from typing import MutableMapping, Optional, Tuple

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


def parse_env_line(line: str) -> Optional[Tuple[str, str]]:
    """
    Parse one ``KEY=VALUE`` line.

    Returns:
        (key, value), or None for blank lines and comments

    Raises:
        ValueError: If the line is not an assignment
    """
    line = line.strip()
    if not line or line.startswith('#'):
        return None
    if line.startswith('export '):
        line = line[len('export '):].lstrip()

    key, sep, value = line.partition('=')
    key, value = key.strip(), value.strip()
    if not sep or not key:
        raise ValueError(f"expected KEY=VALUE, got {line!r}")

    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        value = value[1:-1]
    return key, value


def load_env_file(env_file_path: str = ".env",
                  environ: Optional[MutableMapping[str, str]] = None) -> int:
    """
    Merge a .env file into the environment.

    Args:
        env_file_path: File to read; relative paths are resolved against the project root
        environ: Mapping to update (defaults to os.environ)

    Returns:
        Number of variables set from the file
    """
    target = os.environ if environ is None else environ
    env_path = Path(env_file_path)
    if not env_path.is_absolute():
        env_path = PROJECT_ROOT / env_path

    if not env_path.is_file():
        logger.debug(f"No .env file found at {env_path}")
        return 0

    try:
        text = env_path.read_text(encoding='utf-8')
    except OSError as e:
        logger.error(f"Error reading .env file {env_path}: {e}")
        return 0

    loaded = 0
    for line_num, line in enumerate(text.splitlines(), 1):
        try:
            entry = parse_env_line(line)
        except ValueError as e:
            logger.warning(f"{env_path}:{line_num}: skipped, {e}")
            continue
        if entry is None:
            continue

        key, value = entry
        if key in target:
            logger.debug(f"Skipped {key} (already in environment)")
            continue
        target[key] = value
        loaded += 1

    logger.info(f"Loaded {loaded} variables from {env_path}")
    return loaded


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Interpret a true/false style environment value."""
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


load_env_file()
