"""
Utility functions for file system operations and report file naming.
"""

from __future__ import annotations

import re
from pathlib import Path

# Characters that cannot appear in a single path component
UNSAFE_FILENAME_PATTERN = re.compile(r"[\\/\x00]+")


def safe_filename_part(value: str, fallback: str) -> str:
    """
    Make a user-provided string usable inside a single filename.

    Only path separators and NUL are replaced, so factory names keep their
    spelling (including spaces and non-Latin letters) in downloaded files.

    Example:
        >>> safe_filename_part("Acme / North", "factory")
        'Acme - North'
        >>> safe_filename_part("  ", "factory")
        'factory'
    """
    cleaned = UNSAFE_FILENAME_PATTERN.sub("-", value.strip())
    return cleaned or fallback


def report_filename(factory_name: str, gregorian_date: str) -> str:
    """Download name for an inspection report PDF."""
    name = safe_filename_part(factory_name, "factory")
    day = safe_filename_part(gregorian_date, "undated")
    return f"inspection-report-{name}-{day}.pdf"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
