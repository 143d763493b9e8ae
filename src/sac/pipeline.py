# src/sac/pipeline.py
"""
Public entry points of the aggregation pipeline.

Callers pick a source, build a ProcessingConfig and await one of these.
The pipeline keeps no state between runs: settings are loaded and saved by
the caller, and the wall-clock timeout is applied by the caller through
`run_with_timeout`.
"""
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Optional, Sequence, TypeVar, Union

from sac.core.budget import aggregate
from sac.core.entries import Entry, entries_from_paths
from sac.core.github import RemoteSource, fetch, parse_remote_reference
from sac.core.walker import LocalSource
from sac.errors import RunTimeoutError
from sac.models import AggregateResult, ProcessingConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "LocalSource",
    "RemoteSource",
    "aggregate",
    "aggregate_local",
    "fetch",
    "parse_remote_reference",
    "run_with_timeout",
]


async def aggregate_local(
    roots: Sequence[Union[Entry, Path, str]],
    config: ProcessingConfig,
    cancel: Optional[asyncio.Event] = None,
) -> AggregateResult:
    """Aggregates local files and directories; plain paths are resolved to entries first."""
    entries = [r for r in roots if isinstance(r, Entry)]
    paths = [Path(r) for r in roots if not isinstance(r, Entry)]
    if entries and paths:
        raise TypeError("Pass either tree entries or filesystem paths, not both")
    if paths:
        entries = entries_from_paths(paths)
    return await aggregate(LocalSource(entries), config, cancel)


async def run_with_timeout(run: Awaitable[T], seconds: Optional[float]) -> T:
    """Applies a wall-clock ceiling to a run; None or a non-positive value disables it."""
    if not seconds or seconds <= 0:
        return await run
    try:
        return await asyncio.wait_for(run, timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.warning("Run exceeded the %gs timeout", seconds)
        raise RunTimeoutError() from e
