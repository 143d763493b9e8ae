# src/sac/cli.py
import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress as ProgressBar, TextColumn, TimeElapsedColumn
from rich.table import Table

from sac.config import DEFAULT_TIMEOUT, MAX_FILE_SIZE
from sac.core.github import fetch, parse_remote_reference
from sac.core.matcher import load_ignore_spec
from sac.errors import CancelledError, SacError
from sac.models import AggregateResult, ProcessingConfig, Progress
from sac.pipeline import aggregate_local, run_with_timeout
from sac.settings import DEFAULT_SETTINGS_PATH, Settings, load_settings, save_settings
from sac.utils.tokenizer import Tokenizer

EXIT_ERROR = 1
EXIT_EMPTY = 2
EXIT_CANCELLED = 130

console = Console(stderr=True)

def create_arg_parser():
    parser = argparse.ArgumentParser(
        prog="sac",
        description="Aggregate a source tree or GitHub repository into one text block for an AI chat context window.",
    )
    sub = parser.add_subparsers(dest="source", required=True)

    local = sub.add_parser("local", help="Aggregate local files and directories")
    local.add_argument("paths", type=Path, nargs="+", help="Files or directories to aggregate")

    remote = sub.add_parser("github", help="Aggregate a GitHub repository")
    remote.add_argument("url", type=str, nargs="?", default=None,
                        help="https://github.com/{owner}/{repo}[/tree/{branch}[/{path}]] (default: saved githubUrl)")
    remote.add_argument("--token", type=str, default=None,
                        help="GitHub token for private repos and higher rate limits (default: $GITHUB_TOKEN)")

    for p in (local, remote):
        p.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: stdout)")
        p.add_argument("--token-limit", type=int, default=None, help="Token budget, -1 for unlimited")
        p.add_argument("-x", "--exclude", action="append", default=[], metavar="PATTERN",
                       help="Extra skip pattern ('*' and '?' wildcards); repeatable")
        p.add_argument("--allowed-formats", type=str, default=None,
                       help="Comma-separated extensions, or '*' for all")
        p.add_argument("--remove-comments", action="store_true", default=None, help="Strip comments")
        p.add_argument("--minify", action="store_true", default=None, help="Collapse whitespace")
        p.add_argument("--max-file-size", type=int, default=MAX_FILE_SIZE, help="Skip files larger than this many bytes")
        p.add_argument("--ignore-file", type=Path, default=None, help="Extra gitignore-style rules")
        p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Seconds before giving up, 0 to disable")
        p.add_argument("--settings", type=Path, default=DEFAULT_SETTINGS_PATH, help="Settings file")
        p.add_argument("--save-settings", action="store_true", help="Persist the effective options")
        p.add_argument("--exact-tokens", action="store_true", help="Also report an exact tiktoken count")
        p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def merge_settings(args: argparse.Namespace, settings: Settings) -> Settings:
    """Overlays command line flags on persisted settings."""
    formats = None
    if args.allowed_formats is not None:
        raw = args.allowed_formats.strip()
        formats = "" if raw == "*" else "\n".join(e.strip() for e in raw.split(","))

    token = getattr(args, "token", None) or (os.environ.get("GITHUB_TOKEN") if args.source == "github" else None)

    return settings.update(
        tokenLimit=args.token_limit,
        excludePatterns=list(dict.fromkeys([*settings.excludePatterns, *args.exclude])) if args.exclude else None,
        removeComments=args.remove_comments,
        minifyCode=args.minify,
        allowedFormats=formats,
        githubToken=token,
        githubUrl=getattr(args, "url", None),
    )


def build_config(args: argparse.Namespace, settings: Settings) -> ProcessingConfig:
    ignore_spec = load_ignore_spec(args.ignore_file) if args.ignore_file else None
    return settings.to_processing_config(max_file_size=args.max_file_size, ignore_spec=ignore_spec)


def print_summary(result: AggregateResult, config: ProcessingConfig, exact_tokens: bool) -> None:
    ranked = sorted(result.files, key=lambda f: f[1], reverse=True)
    table = Table(title="Top 10 Largest Files (Est. Tokens)")
    table.add_column("Rank", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("File Path")
    for i, (path, tokens) in enumerate(ranked[:10]):
        table.add_row(str(i + 1), f"{tokens:,}", path)
    console.print(table)

    limit = "Unlimited" if config.is_unbounded else f"{config.token_budget:,}"
    console.print(f"Total files: {result.file_count}")
    console.print(f"Total size:  {result.total_size_bytes:,} bytes")
    console.print(f"Tokens:      {result.token_count:,} / {limit}")
    if exact_tokens:
        console.print(f"Exact tokens (cl100k_base): {Tokenizer.count(result.content):,}")
    if result.truncated:
        console.print(f"[yellow]Token limit ({config.token_budget:,}) reached. Some files were skipped.[/yellow]")


async def _run(args: argparse.Namespace, config: ProcessingConfig, url: Optional[str]) -> AggregateResult:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError, ValueError):
        pass  # not supported on this platform; Ctrl-C raises KeyboardInterrupt instead

    try:
        if args.source == "local":
            return await run_with_timeout(aggregate_local(args.paths, config, cancel), args.timeout)

        ref = parse_remote_reference(url or "")
        with ProgressBar(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as bar:
            task = bar.add_task(f"Fetching {ref.full_name}", total=None)

            def on_progress(progress: Progress) -> None:
                bar.update(task, completed=progress.processed, total=progress.total)

            return await run_with_timeout(fetch(ref, config, cancel, on_progress=on_progress), args.timeout)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError, ValueError):
            pass


def write_output(content: str, output: Optional[Path]) -> None:
    if output is None:
        sys.stdout.write(content + "\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(content, encoding="utf-8")
    console.print(f"\nSuccess! Context written to: {output}")


def main(argv: Optional[List[str]] = None):
    parser = create_arg_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    settings = merge_settings(args, load_settings(args.settings))
    if args.save_settings:
        path = save_settings(settings, args.settings)
        console.print(f"Settings saved to {path}")

    config = build_config(args, settings)
    url = settings.githubUrl if args.source == "github" else None

    try:
        result = asyncio.run(_run(args, config, url))
    except (CancelledError, KeyboardInterrupt):
        console.print("\nCancelled.")
        sys.exit(EXIT_CANCELLED)
    except (SacError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(EXIT_ERROR)

    if result.is_empty:
        console.print("No valid files found.")
        sys.exit(EXIT_EMPTY)

    print_summary(result, config, args.exact_tokens)
    write_output(result.content, args.output)


if __name__ == "__main__":
    main()
