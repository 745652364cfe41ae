"""Paths to data files stored next to the running program."""

from __future__ import annotations

import functools
import os
import sys


@functools.lru_cache(maxsize=None)
def _program_dir() -> str:
    program = sys.argv[0] if sys.argv and sys.argv[0] else ""
    if program:
        return os.path.dirname(os.path.abspath(program))
    return os.getcwd()


def data_path(suffix: str) -> str:
    """Path of ``suffix`` relative to the directory of the running program."""
    return _program_dir() + "/" + suffix