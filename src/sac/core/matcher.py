# src/sac/core/matcher.py
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Sequence

import pathspec

from sac.config import DEFAULT_SKIP_PATTERNS
from sac.models import ProcessingConfig

logger = logging.getLogger(__name__)

# Regex metacharacters except the two glob wildcards
_SPECIAL_CHARS = re.compile(r"[.+^${}()|\[\]\\]")


def normalize_path(path: str) -> str:
    """Strips leading slashes and collapses repeated separators."""
    return re.sub(r"/+", "/", path.replace("\\", "/")).lstrip("/")


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Optional[Pattern[str]]:
    """
    Turns a glob-like skip pattern into an unanchored regex.
    '*' matches any run of characters and '?' any single character.
    Returns None for blank patterns.
    """
    pattern = pattern.strip().lower()
    if not pattern:
        return None
    translated = _SPECIAL_CHARS.sub(lambda m: "\\" + m.group(0), pattern)
    translated = translated.replace("*", ".*").replace("?", ".")
    try:
        return re.compile(translated)
    except re.error as e:
        logger.warning("Pattern %r is not valid, matching it literally (%s)", pattern, e)
        return re.compile(re.escape(pattern))


def effective_patterns(extra: Iterable[str] = ()) -> List[str]:
    """Default skip list followed by the user's patterns."""
    return [*DEFAULT_SKIP_PATTERNS, *extra]


def should_exclude(path: str, patterns: Sequence[str]) -> bool:
    """True if any pattern matches anywhere in the lower-cased path."""
    target = normalize_path(path).lower()
    for pattern in patterns:
        regex = compile_pattern(pattern)
        if regex is not None and regex.search(target):
            return True
    return False


def config_patterns(config: ProcessingConfig) -> List[str]:
    return effective_patterns(config.skip_patterns)


def load_ignore_spec(ignore_file: Path, extra_patterns: Optional[List[str]] = None) -> pathspec.PathSpec:
    """
    Loads gitignore-style rules from an ignore file into a PathSpec.
    A missing or broken file gives an empty spec instead of an error.
    """
    lines: List[str] = []

    if ignore_file.exists():
        try:
            with open(ignore_file, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read ignore file %s: %s", ignore_file, e)

    if extra_patterns:
        lines.extend(extra_patterns)

    try:
        return pathspec.PathSpec.from_lines("gitwildmatch", lines)
    except Exception as e:
        logger.warning("Error parsing ignore rules in %s: %s", ignore_file, e)
        return pathspec.PathSpec.from_lines("gitwildmatch", [])
