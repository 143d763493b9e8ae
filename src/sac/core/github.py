# src/sac/core/github.py
"""
Remote source: aggregates a GitHub repository through the REST API.

The run has two phases so progress can be reported and cancelled: list the
whole recursive tree first, then fetch each surviving file one by one with
a short pause between requests.
"""
import asyncio
import base64
import binascii
import logging
import re
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, TypeVar, Union
from urllib.parse import quote

import httpx

from sac.config import GITHUB_API_URL, REQUEST_DELAY
from sac.core.budget import aggregate
from sac.core.filters import FileFilter
from sac.errors import CancelledError, FetchError, NotFoundError, TransientFileError, ValidationError
from sac.models import AggregateResult, Fragment, ProcessingConfig, Progress, RemoteReference

logger = logging.getLogger(__name__)

T = TypeVar("T")

_GITHUB_URL = re.compile(
    r"^https?://(?:www\.)?github\.com/(?P<owner>[\w-]+)/(?P<repo>[\w.-]+?)(?:\.git)?"
    r"(?:/tree/(?P<branch>[^/]+)(?:/(?P<path>[\w.-]+(?:/[\w.-]+)*))?)?/?$"
)

ProgressCallback = Callable[[Progress], None]


def parse_remote_reference(url: str) -> RemoteReference:
    """
    Parses https://github.com/{owner}/{repo}[/tree/{branch}[/{path}]].
    Raises ValidationError for anything else.
    """
    match = _GITHUB_URL.match(url.strip())
    if not match or match.group("repo") in (".", ".."):
        raise ValidationError(f"Please enter a valid GitHub repository URL: {url!r}")
    return RemoteReference(
        owner=match.group("owner"),
        repo=match.group("repo"),
        branch=match.group("branch"),
        sub_path=match.group("path"),
    )


async def _race(awaitable: Awaitable[T], cancel: Optional[asyncio.Event]) -> T:
    """Awaits the operation unless the cancel event fires first."""
    if cancel is None:
        return await awaitable
    if cancel.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise CancelledError()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
    if task.cancelled():
        raise CancelledError()
    return task.result()


class GitHubClient:
    """Thin async wrapper over the three REST endpoints the fetcher needs."""

    def __init__(
        self,
        credential: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "sac",
        }
        if credential:
            self.headers["Authorization"] = f"Bearer {credential}"
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, str]], cancel: Optional[asyncio.Event]) -> httpx.Response:
        url = f"{self.base_url}{path}"
        return await _race(self._client.get(url, params=params, headers=self.headers), cancel)

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        cancel: Optional[asyncio.Event] = None,
        not_found: str = "Repository not found",
        failure: str = "Failed to fetch repository",
    ) -> Dict[str, Any]:
        """GET a run-level resource; 404 and other failures end the run."""
        try:
            response = await self._get(path, params, cancel)
        except httpx.HTTPError as e:
            raise FetchError(f"{failure}: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(not_found)
        if response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
            raise FetchError(
                "GitHub API rate limit exceeded. Provide a token to raise the limit.",
                status_code=403,
            )
        if not response.is_success:
            raise FetchError(f"{failure} (HTTP {response.status_code})", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"{failure}: invalid JSON response") from e

    async def default_branch(self, ref: RemoteReference, cancel: Optional[asyncio.Event] = None) -> str:
        data = await self.get_json(
            f"/repos/{ref.owner}/{ref.repo}",
            cancel=cancel,
            not_found=f"Repository not found: {ref.full_name}",
        )
        branch = data.get("default_branch")
        if not branch:
            raise FetchError(f"Repository {ref.full_name} did not report a default branch")
        return branch

    async def list_tree(self, ref: RemoteReference, branch: str, cancel: Optional[asyncio.Event] = None) -> List[Dict[str, Any]]:
        data = await self.get_json(
            f"/repos/{ref.owner}/{ref.repo}/git/trees/{quote(branch, safe='')}",
            params={"recursive": "1"},
            cancel=cancel,
            not_found=f"Branch '{branch}' not found in {ref.full_name}",
            failure="Failed to fetch repository contents",
        )
        if data.get("truncated"):
            logger.warning("GitHub truncated the tree listing for %s; some files will be missing", ref.full_name)
        return data.get("tree") or []

    async def file_content(
        self,
        ref: RemoteReference,
        path: str,
        branch: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> bytes:
        """Raises TransientFileError for anything that only affects this file."""
        try:
            response = await self._get(
                f"/repos/{ref.owner}/{ref.repo}/contents/{quote(path, safe='/')}",
                {"ref": branch},
                cancel,
            )
        except httpx.HTTPError as e:
            raise TransientFileError(path, f"request failed: {e}") from e

        if not response.is_success:
            raise TransientFileError(path, f"HTTP {response.status_code}")

        try:
            data = response.json()
            encoded = data["content"]
            if data.get("encoding", "base64") != "base64":
                raise TransientFileError(path, f"unsupported encoding {data.get('encoding')!r}")
            return base64.b64decode(encoded.replace("\n", ""), validate=True)
        except (ValueError, KeyError, TypeError, AttributeError, binascii.Error) as e:
            raise TransientFileError(path, f"malformed content response: {e}") from e


class RemoteSource:
    """Fragment source over a GitHub repository."""
    kind = "remote"

    def __init__(
        self,
        ref: RemoteReference,
        client: GitHubClient,
        progress: Optional[Progress] = None,
        on_progress: Optional[ProgressCallback] = None,
        request_delay: float = REQUEST_DELAY,
    ):
        self.ref = ref
        self.client = client
        self.progress = progress if progress is not None else Progress()
        self.on_progress = on_progress
        self.request_delay = request_delay

    def _report(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self.progress)

    def select_files(self, tree: List[Dict[str, Any]], file_filter: FileFilter) -> List[Dict[str, Any]]:
        """Blobs under sub_path that pass the skip list, allow list and size cap, in listing order."""
        prefix = self.ref.sub_path or ""
        selected = []
        for item in tree:
            if item.get("type") != "blob":
                continue
            path = item.get("path", "")
            if prefix and not (path == prefix or path.startswith(prefix.rstrip("/") + "/")):
                continue
            if file_filter.is_excluded(path):
                continue
            if not file_filter.is_allowed_type(path.rsplit("/", 1)[-1]):
                continue
            if file_filter.exceeds_size(item.get("size", 0)):
                logger.info("Skipping %s: file too large", path)
                continue
            selected.append(item)
        return selected

    async def fragments(self, config: ProcessingConfig, cancel: Optional[asyncio.Event] = None) -> AsyncIterator[Fragment]:
        file_filter = FileFilter(config)
        self.progress.reset()

        try:
            branch = self.ref.branch or await self.client.default_branch(self.ref, cancel)
            tree = await self.client.list_tree(self.ref, branch, cancel)
            files = self.select_files(tree, file_filter)

            self.progress.total = len(files)
            self._report()
            logger.info("Fetching %d files from %s@%s", len(files), self.ref.full_name, branch)

            for index, item in enumerate(files):
                if cancel is not None and cancel.is_set():
                    raise CancelledError()
                if index and self.request_delay > 0:
                    await _race(asyncio.sleep(self.request_delay), cancel)

                path = item["path"]
                fragment = None
                try:
                    data = await self.client.file_content(self.ref, path, branch, cancel)
                    if file_filter.is_binary(data):
                        logger.debug("Skipping %s: binary file", path)
                    else:
                        fragment = file_filter.make_fragment(path, data)
                except TransientFileError as e:
                    logger.warning("Error processing %s", e)

                self.progress.processed += 1
                self._report()
                if fragment is not None:
                    yield fragment
        except (asyncio.CancelledError, NotFoundError, FetchError):
            # Run-level failures clear the counters; a timeout arrives here as task cancellation.
            self.progress.reset()
            self._report()
            raise


async def fetch(
    ref: Union[RemoteReference, str],
    config: ProcessingConfig,
    cancel: Optional[asyncio.Event] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    progress: Optional[Progress] = None,
    on_progress: Optional[ProgressCallback] = None,
    request_delay: float = REQUEST_DELAY,
) -> AggregateResult:
    """
    Aggregates a remote repository.

    Raises ValidationError for a malformed URL, NotFoundError when the
    repository is missing and CancelledError when `cancel` is set during
    the run. Files that fail individually are skipped.
    """
    if isinstance(ref, str):
        ref = parse_remote_reference(ref)

    async with GitHubClient(config.credential, http_client=http_client) as client:
        source = RemoteSource(
            ref,
            client,
            progress=progress,
            on_progress=on_progress,
            request_delay=request_delay,
        )
        return await aggregate(source, config, cancel)
