# src/sac/core/budget.py
import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Protocol

from sac.models import AggregateResult, Fragment, ProcessingConfig
from sac.utils.tokenizer import estimate, estimate_length

logger = logging.getLogger(__name__)


class FragmentSource(Protocol):
    """Anything that can produce fragments in traversal order: LocalSource or RemoteSource."""
    kind: str

    def fragments(self, config: ProcessingConfig, cancel: Optional[asyncio.Event] = None) -> AsyncIterator[Fragment]: ...


class Budgeter:
    """
    Accumulates fragments into an AggregateResult until the token budget or
    the source runs out. Checks happen between fragments; a file is never
    cut in half.

    Rendered fragments are kept as parts and joined once by `finish()`. The
    budget check works on the length the trimmed content would have: the
    leading blank lines of the first part and the trailing whitespace of the
    last part are the only characters trimming removes.
    """

    def __init__(self, config: ProcessingConfig):
        self.config = config
        self._parts: List[str] = []
        self._length = 0
        self.result = AggregateResult()

    @property
    def exhausted(self) -> bool:
        return not self.config.is_unbounded and self.result.token_count >= self.config.token_budget

    def offer(self, fragment: Fragment) -> bool:
        """Appends the fragment if it fits. Returns False, and marks the result truncated, if not."""
        if self.result.truncated:
            return False
        if self.exhausted:
            self.result.truncated = True
            return False

        rendered = fragment.render()
        length = self._length + len(rendered)
        trimmed = length - (len(rendered) - len(rendered.rstrip()))
        if self._parts:
            trimmed -= len(self._parts[0]) - len(self._parts[0].lstrip())
        else:
            trimmed -= len(rendered) - len(rendered.lstrip())
        tokens = estimate_length(trimmed)
        if not self.config.is_unbounded and tokens > self.config.token_budget:
            logger.warning("Token limit (%d) reached at %s", self.config.token_budget, fragment.path)
            self.result.truncated = True
            return False

        self._parts.append(rendered)
        self._length = length
        self.result.token_count = tokens
        self.result.file_count += 1
        self.result.total_size_bytes += fragment.size
        self.result.files.append((fragment.path, estimate(fragment.content)))
        return True

    def finish(self) -> AggregateResult:
        """Joins the accepted fragments into the result content."""
        self.result.content = "".join(self._parts).strip()
        self.result.token_count = estimate(self.result.content)
        return self.result


async def aggregate(
    source: FragmentSource,
    config: ProcessingConfig,
    cancel: Optional[asyncio.Event] = None,
) -> AggregateResult:
    budgeter = Budgeter(config)
    async with aclosing(source.fragments(config, cancel)) as fragments:
        async for fragment in fragments:
            if not budgeter.offer(fragment):
                break

    result = budgeter.finish()
    logger.info(
        "Aggregated %d files from %s source (%d bytes, ~%d tokens%s)",
        result.file_count,
        source.kind,
        result.total_size_bytes,
        result.token_count,
        ", truncated" if result.truncated else "",
    )
    return result
