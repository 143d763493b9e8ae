# src/sac/core/transform.py
"""
Per-file text normalization: comment stripping and minification.

Comment stripping is lexical and line oriented. It does not know about
string literals, so text such as "a // b" inside a string is stripped too.
"""
import re

from sac.models import ProcessingConfig

# A '//' preceded by ':' is kept so URLs survive
_C_COMMENTS = re.compile(r"/\*[\s\S]*?\*/|([^:]|^)//.*$", re.MULTILINE)
_HASH_LINES = re.compile(r"^\s*#.*$", re.MULTILINE)
_DASH_LINES = re.compile(r"^\s*--.*$", re.MULTILINE)
_BLANK_LINES = re.compile(r"^\s*\n", re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")

_MAX_PASSES = 8


def _strip_once(text: str) -> str:
    text = _C_COMMENTS.sub(lambda m: m.group(1) or "", text)
    text = _HASH_LINES.sub("", text)
    text = _DASH_LINES.sub("", text)
    text = _BLANK_LINES.sub("", text)
    return text.strip()


def strip_comments(text: str) -> str:
    # Removing one comment can line up another; repeat until nothing changes.
    for _ in range(_MAX_PASSES):
        stripped = _strip_once(text)
        if stripped == text:
            break
        text = stripped
    return text


def minify(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def transform(text: str, config: ProcessingConfig) -> str:
    if config.strip_comments:
        text = strip_comments(text)
    if config.minify:
        text = minify(text)
    return text
