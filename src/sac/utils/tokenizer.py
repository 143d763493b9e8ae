# src/sac/utils/tokenizer.py
import math

import tiktoken

CHARS_PER_TOKEN = 4


def estimate(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up.

    This is a cheap proxy, not a tokenizer. Budget checks built on it are
    advisory.
    """
    return estimate_length(len(text))


def estimate_length(length: int) -> int:
    """Same estimate for a text of `length` characters that was never built."""
    return math.ceil(length / CHARS_PER_TOKEN)


class Tokenizer:
    """Exact counts with tiktoken, for reporting only."""
    _encoding = None

    @classmethod
    def get_encoding(cls):
        if cls._encoding is None:
            cls._encoding = tiktoken.get_encoding("cl100k_base")
        return cls._encoding

    @staticmethod
    def count(text: str) -> int:
        if not text:
            return 0
        return len(Tokenizer.get_encoding().encode(text, disallowed_special=()))
