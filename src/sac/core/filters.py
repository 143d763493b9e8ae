# src/sac/core/filters.py
import logging
from typing import FrozenSet, Iterable

from sac.core.matcher import config_patterns, normalize_path, should_exclude
from sac.core.transform import transform
from sac.models import Fragment, ProcessingConfig

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 1024


def parse_allowed_formats(raw: Iterable[str]) -> FrozenSet[str]:
    """Lower-cases entries, adds the leading dot and drops blanks."""
    allowed = set()
    for item in raw:
        item = item.strip().lower()
        if not item or item == "*":
            continue
        allowed.add(item if item.startswith(".") else f".{item}")
    return frozenset(allowed)


def extension_of(name: str) -> str:
    """'.' plus the text after the last dot; a dotless name is its own extension."""
    return "." + name.rsplit(".", 1)[-1].lower()


class FileFilter:
    """
    Filtering and transformation shared by the local walker and the remote
    fetcher, so both sources apply exactly the same rules.
    """

    def __init__(self, config: ProcessingConfig):
        self.config = config
        self.patterns = config_patterns(config)

    def is_excluded(self, path: str, is_dir: bool = False) -> bool:
        if should_exclude(path, self.patterns):
            return True
        spec = self.config.ignore_spec
        if spec is not None:
            rel = normalize_path(path)
            return spec.match_file(rel + "/" if is_dir else rel)
        return False

    def is_allowed_type(self, name: str) -> bool:
        allowed = self.config.allowed_extensions
        if not allowed:
            return True
        return extension_of(name) in allowed

    def exceeds_size(self, size: int) -> bool:
        return size > self.config.max_file_size

    @staticmethod
    def is_binary(data: bytes) -> bool:
        """Checks the first 1024 bytes for null bytes."""
        return b"\0" in data[:BINARY_SNIFF_BYTES]

    @staticmethod
    def decode(data: bytes) -> str:
        return data.decode("utf-8", errors="replace")

    def make_fragment(self, path: str, data: bytes) -> Fragment:
        content = transform(self.decode(data), self.config)
        return Fragment(path=normalize_path(path), content=content, size=len(data))
