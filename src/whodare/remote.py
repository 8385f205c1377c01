"""Read-only access to stats files committed to GitHub repositories."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable

import requests

from .config import DEFAULT_REMOTE_BRANCHES
from .storage import TrackerData
from .storage.envelope import decode_record

logger = logging.getLogger(__name__)

RAW_URL = "https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{path}"
STATS_PATH = ".howdare/stats.json"
DEFAULT_BRANCH = "main"

_GITHUB_URL = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s#?]+)(?:/tree/([^/\s#?]+))?")


class RemoteFetchError(RuntimeError):
    """Raised when no candidate branch yields a readable stats file."""

    def __init__(self, message: str, *, branches: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.branches = tuple(branches)


@dataclass(slots=True, frozen=True)
class RepoRef:
    owner: str
    repo: str
    branch: str | None = None


def parse_github_url(url: str) -> RepoRef | None:
    """Extract owner, repository and optional branch from a GitHub URL."""

    match = _GITHUB_URL.search(url.strip())
    if match is None:
        return None
    owner, repo, branch = match.groups()
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo:
        return None
    return RepoRef(owner=owner, repo=repo, branch=branch)


def _try_branches(
    http: requests.Session,
    owner: str,
    repo: str,
    candidates: list[str],
    timeout: float,
) -> dict[str, Any]:
    last_error = "no branches to try"

    for name in candidates:
        url = RAW_URL.format(owner=owner, repo=repo, branch=name, path=STATS_PATH)
        logger.info("Fetching remote stats", extra={"url": url})
        try:
            response = http.get(url, timeout=timeout)
        except requests.RequestException as exc:
            last_error = str(exc)
            logger.warning("Remote fetch failed", extra={"branch": name, "error": last_error})
            continue

        if not response.ok:
            last_error = f"HTTP {response.status_code}: {response.reason}"
            continue

        try:
            return response.json()
        except ValueError as exc:
            last_error = f"invalid JSON: {exc}"
            logger.warning("Remote stats not JSON", extra={"branch": name})

    raise RemoteFetchError(
        f"Could not find {STATS_PATH} in {owner}/{repo}. "
        f"Tried branches: {', '.join(candidates)}. "
        f"Make sure the stats file is committed. Last error: {last_error}",
        branches=candidates,
    )


def fetch_stats(
    owner: str,
    repo: str,
    branch: str | None = None,
    *,
    branches: Iterable[str] = DEFAULT_REMOTE_BRANCHES,
    session: requests.Session | None = None,
    timeout: float = 10.0,
) -> dict[str, Any]:
    """Return the parsed ``stats.json`` document, trying each branch in order."""

    candidates = [branch] if branch else list(branches)
    if session is not None:
        return _try_branches(session, owner, repo, candidates, timeout)
    with requests.Session() as http:
        return _try_branches(http, owner, repo, candidates, timeout)


def fetch_and_decode(
    url: str,
    *,
    password: str | None = None,
    branches: Iterable[str] = DEFAULT_REMOTE_BRANCHES,
    session: requests.Session | None = None,
    timeout: float = 10.0,
) -> TrackerData:
    """Fetch a repository's stats and decode them with the workspace default key.

    A ``/tree/main`` URL counts as no branch at all, so ``master`` is still tried.
    """

    ref = parse_github_url(url)
    if ref is None:
        raise RemoteFetchError("Invalid GitHub URL. Use the form https://github.com/owner/repo")

    document = fetch_stats(
        ref.owner,
        ref.repo,
        None if ref.branch == DEFAULT_BRANCH else ref.branch,
        branches=branches,
        session=session,
        timeout=timeout,
    )
    return decode_record(document, password)


__all__ = [
    "RAW_URL",
    "RemoteFetchError",
    "RepoRef",
    "STATS_PATH",
    "fetch_and_decode",
    "fetch_stats",
    "parse_github_url",
]
