# src/sac/core/entries.py
"""
Tree entries handed to the local walker.

A directory does not list its children in one call. Its reader returns
pages and signals the end with an empty page, the way browser and
platform directory readers do, so callers must keep reading until then.
"""
import asyncio
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional

PAGE_SIZE = 100


class Entry(ABC):
    name: str


class FileEntry(Entry):
    @abstractmethod
    async def size(self) -> int: ...

    @abstractmethod
    async def read_bytes(self) -> bytes: ...


class DirectoryReader(ABC):
    @abstractmethod
    async def read_entries(self) -> List[Entry]:
        """Next page of children; an empty list once all were returned."""


class DirectoryEntry(Entry):
    @abstractmethod
    def reader(self) -> DirectoryReader: ...


class LocalFileEntry(FileEntry):
    def __init__(self, path: Path):
        self.path = path
        self.name = path.name

    async def size(self) -> int:
        stat = await asyncio.to_thread(self.path.stat)
        return stat.st_size

    async def read_bytes(self) -> bytes:
        return await asyncio.to_thread(self.path.read_bytes)

    def __repr__(self) -> str:
        return f"LocalFileEntry({str(self.path)!r})"


class LocalDirectoryReader(DirectoryReader):
    def __init__(self, path: Path, page_size: int = PAGE_SIZE):
        self.path = path
        self.page_size = page_size
        self._children: Optional[List[Entry]] = None
        self._offset = 0

    def _list(self) -> List[Entry]:
        with os.scandir(self.path) as it:
            dir_entries = sorted(it, key=lambda e: e.name)
        children: List[Entry] = []
        for d in dir_entries:
            child = Path(d.path)
            # Symlinked directories are not followed
            if d.is_dir(follow_symlinks=False):
                children.append(LocalDirectoryEntry(child))
            elif d.is_file():
                children.append(LocalFileEntry(child))
        return children

    async def read_entries(self) -> List[Entry]:
        if self._children is None:
            self._children = await asyncio.to_thread(self._list)
        page = self._children[self._offset:self._offset + self.page_size]
        self._offset += len(page)
        return page


class LocalDirectoryEntry(DirectoryEntry):
    def __init__(self, path: Path):
        self.path = path
        self.name = path.name

    def reader(self) -> DirectoryReader:
        return LocalDirectoryReader(self.path)

    def __repr__(self) -> str:
        return f"LocalDirectoryEntry({str(self.path)!r})"


def entries_from_paths(paths: Iterable[Path]) -> List[Entry]:
    """Resolves filesystem paths into root entries, in the given order."""
    roots: List[Entry] = []
    for path in paths:
        path = Path(path).resolve()
        if path.is_dir():
            roots.append(LocalDirectoryEntry(path))
        elif path.is_file():
            roots.append(LocalFileEntry(path))
        else:
            raise FileNotFoundError(f"No such file or directory: '{path}'")
    return roots
