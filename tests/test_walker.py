# tests/test_walker.py
import asyncio
import time
from typing import List

import pytest

from sac.core.budget import Budgeter, aggregate
from sac.core.entries import DirectoryEntry, DirectoryReader, Entry, FileEntry
from sac.core.matcher import load_ignore_spec
from sac.core.walker import LocalSource, walk
from sac.errors import CancelledError
from sac.models import Fragment, ProcessingConfig, RunOutcome
from sac.pipeline import aggregate_local
from sac.utils.tokenizer import estimate

# --- In-memory tree entries ---


class MemFile(FileEntry):
    def __init__(self, name: str, data, fail: bool = False, on_read=None):
        self.name = name
        self.data = data.encode("utf-8") if isinstance(data, str) else data
        self.fail = fail
        self.on_read = on_read
        self.reads = 0

    async def size(self) -> int:
        return len(self.data)

    async def read_bytes(self) -> bytes:
        self.reads += 1
        if self.on_read is not None:
            self.on_read()
        if self.fail:
            raise PermissionError(f"cannot read {self.name}")
        return self.data


class MemReader(DirectoryReader):
    def __init__(self, directory: "MemDir"):
        self.directory = directory
        self.offset = 0

    async def read_entries(self) -> List[Entry]:
        self.directory.reads += 1
        if self.directory.fail:
            raise OSError(f"cannot list {self.directory.name}")
        page = self.directory.children[self.offset:self.offset + self.directory.page_size]
        self.offset += len(page)
        return page


class MemDir(DirectoryEntry):
    def __init__(self, name: str, children: List[Entry], page_size: int = 2, fail: bool = False):
        self.name = name
        self.children = children
        self.page_size = page_size
        self.fail = fail
        self.reads = 0

    def reader(self) -> DirectoryReader:
        return MemReader(self)


async def collect(entries, config, cancel=None) -> List[Fragment]:
    return [f async for f in walk(entries, config, cancel)]


@pytest.fixture
def sample_tree():
    """
    a.py            (10 bytes)
    b/node_modules/c.py
    b/d.ts
    """
    node_modules = MemDir("node_modules", [MemFile("c.py", "print('c')")])
    return {
        "roots": [
            MemFile("a.py", "0123456789"),
            MemDir("b", [node_modules, MemFile("d.ts", "let d = 1;")]),
        ],
        "node_modules": node_modules,
    }


# --- Test 1: Traversal and filtering ---


@pytest.mark.asyncio
async def test_default_config_prunes_node_modules(sample_tree):
    result = await aggregate(LocalSource(sample_tree["roots"]), ProcessingConfig())

    assert result.file_count == 2
    assert [path for path, _ in result.files] == ["a.py", "b/d.ts"]
    assert "node_modules" not in result.content
    # The pruned directory was never listed
    assert sample_tree["node_modules"].reads == 0


@pytest.mark.asyncio
async def test_exact_output_format_and_counters(sample_tree):
    result = await aggregate(LocalSource(sample_tree["roots"]), ProcessingConfig())

    assert result.content == "// File: a.py\n0123456789\n\n// File: b/d.ts\nlet d = 1;"
    assert result.total_size_bytes == 20
    assert result.token_count == estimate(result.content)
    assert result.truncated is False
    assert result.outcome is RunOutcome.COMPLETE


@pytest.mark.asyncio
async def test_directory_reader_is_drained_page_by_page():
    files = [MemFile(f"f{i}.py", f"x{i}") for i in range(5)]
    directory = MemDir("pkg", files, page_size=2)

    fragments = await collect([directory], ProcessingConfig())

    assert [f.path for f in fragments] == [f"pkg/f{i}.py" for i in range(5)]
    # Pages of 2, 2, 1, then the empty page that ends the listing
    assert directory.reads == 4


@pytest.mark.asyncio
async def test_oversized_file_is_skipped():
    roots = [MemFile("big.py", "0123456789"), MemFile("ok.py", "abc")]
    result = await aggregate(LocalSource(roots), ProcessingConfig(max_file_size=5))

    assert result.file_count == 1
    assert "big.py" not in result.content
    assert result.total_size_bytes == 3


@pytest.mark.asyncio
async def test_allow_list_limits_extensions():
    roots = [MemFile("a.py", "a = 1"), MemFile("b.ts", "let b = 2;"), MemDir("src", [MemFile("c.PY", "c = 3")])]
    config = ProcessingConfig(allowed_extensions=frozenset({".py"}))

    fragments = await collect(roots, config)

    assert [f.path for f in fragments] == ["a.py", "src/c.PY"]


@pytest.mark.asyncio
async def test_user_skip_patterns_prune_subtrees():
    secret = MemDir("secrets", [MemFile("key.py", "KEY = 1")])
    roots = [MemDir("app", [secret, MemFile("main.py", "run()")])]
    config = ProcessingConfig(skip_patterns=("Secret*",))

    fragments = await collect(roots, config)

    assert [f.path for f in fragments] == ["app/main.py"]
    assert secret.reads == 0


@pytest.mark.asyncio
async def test_ignore_spec_applies_to_local_walk(tmp_path):
    ignore_file = tmp_path / ".sacignore"
    ignore_file.write_text("generated/\n", encoding="utf-8")
    generated = MemDir("generated", [MemFile("api.py", "x")])
    roots = [MemDir("src", [generated, MemFile("main.py", "y")])]
    config = ProcessingConfig(ignore_spec=load_ignore_spec(ignore_file))

    fragments = await collect(roots, config)

    assert [f.path for f in fragments] == ["src/main.py"]
    assert generated.reads == 0


@pytest.mark.asyncio
async def test_binary_files_are_skipped():
    roots = [MemFile("image.png", b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"), MemFile("a.py", "a")]
    fragments = await collect(roots, ProcessingConfig())
    assert [f.path for f in fragments] == ["a.py"]


@pytest.mark.asyncio
async def test_transform_flags_are_applied():
    roots = [MemFile("a.js", "// header\nconst a = 1; /* note */\n\n\nconst b = 2;\n")]
    fragments = await collect(roots, ProcessingConfig(strip_comments=True, minify=True))
    assert fragments[0].content == "const a = 1; const b = 2;"


# --- Test 2: Failures are absorbed per file / per subtree ---


@pytest.mark.asyncio
async def test_unreadable_file_is_skipped(caplog):
    roots = [MemFile("locked.py", "x", fail=True), MemFile("open.py", "y")]

    fragments = await collect(roots, ProcessingConfig())

    assert [f.path for f in fragments] == ["open.py"]
    assert "locked.py" in caplog.text


@pytest.mark.asyncio
async def test_unlistable_directory_only_skips_its_subtree():
    roots = [MemDir("broken", [MemFile("x.py", "x")], fail=True), MemFile("after.py", "z")]
    fragments = await collect(roots, ProcessingConfig())
    assert [f.path for f in fragments] == ["after.py"]


# --- Test 3: Budget ---


@pytest.mark.asyncio
async def test_tiny_budget_accepts_nothing_and_truncates():
    result = await aggregate(LocalSource([MemFile("a.py", "print('hello world')")]), ProcessingConfig(token_budget=1))

    assert result.file_count == 0
    assert result.content == ""
    assert result.truncated is True
    assert result.is_empty is False
    assert result.outcome is RunOutcome.TRUNCATED


@pytest.mark.asyncio
async def test_budget_stops_between_files_and_stops_the_walk():
    a = MemFile("a.py", "x" * 40)  # "// File: a.py\n" + 40 chars = 14 tokens
    b = MemFile("b.py", "y" * 40)
    c = MemFile("c.py", "z" * 40)

    result = await aggregate(LocalSource([a, b, c]), ProcessingConfig(token_budget=20))

    assert result.file_count == 1
    assert result.token_count == 14
    assert result.truncated is True
    assert "b.py" not in result.content
    assert c.reads == 0


@pytest.mark.asyncio
async def test_budget_reached_exactly_at_end_is_not_truncated():
    result = await aggregate(LocalSource([MemFile("a.py", "x" * 40)]), ProcessingConfig(token_budget=14))

    assert result.file_count == 1
    assert result.token_count == 14
    assert result.truncated is False


@pytest.mark.asyncio
async def test_unbounded_budget_accepts_everything():
    roots = [MemFile(f"{i}.py", "x" * 400) for i in range(10)]
    result = await aggregate(LocalSource(roots), ProcessingConfig(token_budget=-1))
    assert result.file_count == 10
    assert result.truncated is False


@pytest.mark.asyncio
async def test_nothing_matched_is_reported_as_empty():
    roots = [MemFile("a.ts", "let a;")]
    result = await aggregate(LocalSource(roots), ProcessingConfig(allowed_extensions=frozenset({".py"})))

    assert result.is_empty is True
    assert result.truncated is False
    assert result.outcome is RunOutcome.EMPTY


def test_budgeter_rejects_after_truncation():
    budgeter = Budgeter(ProcessingConfig(token_budget=1))
    assert budgeter.offer(Fragment("a.py", "long enough to overflow")) is False
    assert budgeter.offer(Fragment("b.py", "")) is False
    assert budgeter.result.file_count == 0
    assert budgeter.result.truncated is True


def test_budgeter_counts_match_trimmed_content():
    fragments = [Fragment("a.py", "x = 1\n\n"), Fragment("b.py", "  \n"), Fragment("c.py", "y = 2\t\n")]
    budgeter = Budgeter(ProcessingConfig(token_budget=-1))

    counts = []
    for fragment in fragments:
        assert budgeter.offer(fragment) is True
        counts.append(budgeter.result.token_count)
    result = budgeter.finish()

    expected = "".join(f.render() for f in fragments).strip()
    assert result.content == expected
    assert result.token_count == estimate(expected)
    assert counts == [
        estimate("".join(f.render() for f in fragments[:n]).strip()) for n in range(1, 4)
    ]


def test_budget_check_uses_trimmed_length():
    # "// File: a.py\n" + 38 chars is 52 chars, 13 tokens; the trailing newlines are trimmed
    budgeter = Budgeter(ProcessingConfig(token_budget=13))
    assert budgeter.offer(Fragment("a.py", "x" * 38 + "\n\n\n\n")) is True
    assert budgeter.finish().token_count == 13


def test_budgeter_scales_linearly_with_file_count():
    body = "x" * 20000
    budgeter = Budgeter(ProcessingConfig(token_budget=-1))

    start = time.perf_counter()
    for i in range(3000):
        budgeter.offer(Fragment(f"f{i}.py", body))
    result = budgeter.finish()
    elapsed = time.perf_counter() - start

    assert result.file_count == 3000
    assert result.content.endswith(body)
    assert elapsed < 10


# --- Test 4: Cancellation ---


@pytest.mark.asyncio
async def test_cancel_before_start_raises():
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(CancelledError):
        await aggregate(LocalSource([MemFile("a.py", "a")]), ProcessingConfig(), cancel)


@pytest.mark.asyncio
async def test_cancel_mid_walk_raises_instead_of_partial_result():
    cancel = asyncio.Event()
    later = MemFile("b.py", "b")
    roots = [MemDir("src", [MemFile("a.py", "a", on_read=cancel.set), later])]

    with pytest.raises(CancelledError):
        await aggregate(LocalSource(roots), ProcessingConfig(), cancel)
    assert later.reads == 0


# --- Test 5: Real filesystem ---


@pytest.mark.asyncio
async def test_aggregate_local_over_filesystem(tmp_path):
    project = tmp_path / "proj"
    (project / "src").mkdir(parents=True)
    (project / "node_modules" / "lib").mkdir(parents=True)
    (project / "assets").mkdir()

    (project / "src" / "main.py").write_text("def hello():\n  print('hello')", encoding="utf-8")
    (project / "README.md").write_text("# Project", encoding="utf-8")
    (project / "node_modules" / "lib" / "index.js").write_text("module.exports = 1", encoding="utf-8")
    (project / "assets" / "image.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR")

    result = await aggregate_local([project], ProcessingConfig())

    assert [path for path, _ in result.files] == ["proj/README.md", "proj/src/main.py"]
    assert result.content.startswith("// File: proj/README.md\n# Project")
    assert "index.js" not in result.content
    assert "PNG" not in result.content


@pytest.mark.asyncio
async def test_aggregate_local_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        await aggregate_local([tmp_path / "missing"], ProcessingConfig())
