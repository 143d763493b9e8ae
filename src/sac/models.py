# src/sac/models.py
import enum
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Tuple

import pathspec

from sac.config import MAX_FILE_SIZE, UNLIMITED


@dataclass(frozen=True)
class ProcessingConfig:
    """Immutable settings for a single aggregation run."""
    allowed_extensions: FrozenSet[str] = frozenset()
    skip_patterns: Tuple[str, ...] = ()
    max_file_size: int = MAX_FILE_SIZE
    token_budget: int = UNLIMITED
    strip_comments: bool = False
    minify: bool = False
    credential: Optional[str] = field(default=None, repr=False)
    ignore_spec: Optional[pathspec.PathSpec] = field(default=None, compare=False)

    @property
    def is_unbounded(self) -> bool:
        return self.token_budget <= 0


@dataclass(frozen=True)
class Fragment:
    """One accepted file: normalized path plus transformed text."""
    path: str
    content: str
    size: int = 0

    def render(self) -> str:
        return f"\n\n// File: {self.path}\n{self.content}"


class RunOutcome(enum.Enum):
    COMPLETE = "complete"
    TRUNCATED = "truncated"
    EMPTY = "empty"


@dataclass
class AggregateResult:
    content: str = ""
    file_count: int = 0
    total_size_bytes: int = 0
    token_count: int = 0
    truncated: bool = False
    # (path, estimated tokens) per accepted file, in order
    files: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when nothing matched, as opposed to too much matching."""
        return self.file_count == 0 and not self.truncated

    @property
    def outcome(self) -> RunOutcome:
        if self.truncated:
            return RunOutcome.TRUNCATED
        if self.file_count == 0:
            return RunOutcome.EMPTY
        return RunOutcome.COMPLETE


@dataclass(frozen=True)
class RemoteReference:
    owner: str
    repo: str
    branch: Optional[str] = None
    sub_path: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class Progress:
    """Counters written by the active run, read by observers."""
    processed: int = 0
    total: int = 0

    def reset(self) -> None:
        self.processed = 0
        self.total = 0
