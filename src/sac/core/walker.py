# src/sac/core/walker.py
import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Sequence

from sac.core.entries import DirectoryEntry, Entry, FileEntry
from sac.core.filters import FileFilter
from sac.errors import CancelledError, TransientFileError
from sac.models import Fragment, ProcessingConfig

logger = logging.getLogger(__name__)


async def _read_file(entry: FileEntry, entry_path: str, file_filter: FileFilter) -> Optional[Fragment]:
    """Returns None when the file is filtered out, raises TransientFileError on read failure."""
    try:
        size = await entry.size()
    except OSError as e:
        raise TransientFileError(entry_path, f"could not stat: {e}") from e

    if file_filter.exceeds_size(size):
        logger.info("Skipping %s: file too large (%.1fMB)", entry_path, size / 1024 / 1024)
        return None

    if not file_filter.is_allowed_type(entry.name):
        logger.debug("Skipping %s: file type not allowed", entry_path)
        return None

    try:
        data = await entry.read_bytes()
    except OSError as e:
        raise TransientFileError(entry_path, f"read error: {e}") from e

    if file_filter.is_binary(data):
        logger.debug("Skipping %s: binary file", entry_path)
        return None

    return file_filter.make_fragment(entry_path, data)


async def _list_children(entry: DirectoryEntry) -> List[Entry]:
    """Reads pages until the reader returns an empty one."""
    reader = entry.reader()
    children: List[Entry] = []
    while True:
        page = await reader.read_entries()
        if not page:
            return children
        children.extend(page)


async def _walk_entry(
    entry: Entry,
    path: str,
    file_filter: FileFilter,
    cancel: Optional[asyncio.Event],
) -> AsyncIterator[Fragment]:
    if cancel is not None and cancel.is_set():
        raise CancelledError()

    entry_path = f"{path}/{entry.name}" if path else entry.name

    if isinstance(entry, DirectoryEntry):
        if file_filter.is_excluded(entry_path, is_dir=True):
            logger.debug("Skipping %s due to exclude pattern match", entry_path)
            return
        try:
            children = await _list_children(entry)
        except OSError as e:
            logger.warning("Could not read directory %s: %s", entry_path, e)
            return
        for child in children:
            async with aclosing(_walk_entry(child, entry_path, file_filter, cancel)) as fragments:
                async for fragment in fragments:
                    yield fragment
        return

    if file_filter.is_excluded(entry_path):
        logger.debug("Skipping %s due to exclude pattern match", entry_path)
        return

    if isinstance(entry, FileEntry):
        try:
            fragment = await _read_file(entry, entry_path, file_filter)
        except TransientFileError as e:
            logger.warning("Error processing %s", e)
            return
        if fragment is not None:
            yield fragment


async def walk(
    root_entries: Sequence[Entry],
    config: ProcessingConfig,
    cancel: Optional[asyncio.Event] = None,
) -> AsyncIterator[Fragment]:
    """
    Depth-first traversal of the given roots, yielding one Fragment per
    accepted file. Siblings are visited in the order their reader returns
    them. Closing the generator stops the walk.
    """
    file_filter = FileFilter(config)
    for entry in root_entries:
        async with aclosing(_walk_entry(entry, "", file_filter, cancel)) as fragments:
            async for fragment in fragments:
                yield fragment


class LocalSource:
    """Fragment source over already-resolved local tree entries."""
    kind = "local"

    def __init__(self, root_entries: Sequence[Entry]):
        self.root_entries = list(root_entries)

    def fragments(self, config: ProcessingConfig, cancel: Optional[asyncio.Event] = None) -> AsyncIterator[Fragment]:
        return walk(self.root_entries, config, cancel)
