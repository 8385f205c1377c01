from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from whodare import remote
from whodare.remote import RemoteFetchError, RepoRef, fetch_and_decode, fetch_stats, parse_github_url
from whodare.storage import AggregationStore, EditDelta, FormatUnsupportedError, encode, encode_plaintext


class StubResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self.reason = "OK" if self.ok else "Not Found"
        self._payload = payload
        self._text = text

    def json(self) -> Any:
        if self._text is not None:
            return json.loads(self._text)
        return self._payload


class StubSession:
    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses
        self.requested: list[str] = []
        self.timeouts: list[float] = []

    def get(self, url: str, timeout: float) -> StubResponse:
        self.requested.append(url)
        self.timeouts.append(timeout)
        result = self.responses.get(url, StubResponse(404))
        if isinstance(result, Exception):
            raise result
        return result


def raw(branch: str, owner: str = "octo", repo: str = "widgets") -> str:
    return f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}/.howdare/stats.json"


def tracked_document(encrypted: bool = True) -> dict:
    store = AggregationStore(clock=lambda: 10, day_of=lambda _ts: "2025-01-01")
    store.create_empty("/home/octo/widgets")
    store.apply_event("lib.py", EditDelta(origin="ai", timestamp=10, lines_added=8, chars_added=200))
    data = store.snapshot()
    payload = encode(data) if encrypted else encode_plaintext(data)
    return json.loads(payload)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://github.com/octo/widgets", RepoRef("octo", "widgets")),
        ("https://github.com/octo/widgets.git", RepoRef("octo", "widgets")),
        ("git@github.com:octo/widgets.git", RepoRef("octo", "widgets")),
        ("https://github.com/octo/widgets/tree/dev", RepoRef("octo", "widgets", "dev")),
        ("  github.com/octo/widgets?tab=readme  ", RepoRef("octo", "widgets")),
    ],
)
def test_parse_github_url_forms(url: str, expected: RepoRef) -> None:
    assert parse_github_url(url) == expected


@pytest.mark.parametrize("url", ["https://gitlab.com/octo/widgets", "github.com/octo", "not a url"])
def test_parse_github_url_rejects_other_hosts(url: str) -> None:
    assert parse_github_url(url) is None


def test_fetch_falls_back_to_next_branch() -> None:
    document = {"hello": "world"}
    session = StubSession({raw("master"): StubResponse(payload=document)})

    result = fetch_stats("octo", "widgets", session=session, timeout=3.0)

    assert result == document
    assert session.requested == [raw("main"), raw("master")]
    assert session.timeouts == [3.0, 3.0]


def test_explicit_branch_is_the_only_candidate() -> None:
    session = StubSession({})

    with pytest.raises(RemoteFetchError) as excinfo:
        fetch_stats("octo", "widgets", "dev", session=session)

    assert session.requested == [raw("dev")]
    assert excinfo.value.branches == ("dev",)


def test_error_lists_every_branch_tried() -> None:
    session = StubSession(
        {
            raw("main"): requests.ConnectionError("connection refused"),
            raw("master"): StubResponse(text="<html>not json</html>"),
        }
    )

    with pytest.raises(RemoteFetchError) as excinfo:
        fetch_stats("octo", "widgets", session=session)

    message = str(excinfo.value)
    assert "Tried branches: main, master" in message
    assert "invalid JSON" in message
    assert excinfo.value.branches == ("main", "master")


def test_fetch_and_decode_encrypted_repository_stats() -> None:
    session = StubSession({raw("main"): StubResponse(payload=tracked_document())})

    data = fetch_and_decode("https://github.com/octo/widgets", session=session)

    assert data.workspace_id == "/home/octo/widgets"
    assert data.files["lib.py"].ai_lines == 8


def test_fetch_and_decode_plaintext_repository_stats() -> None:
    session = StubSession({raw("trunk"): StubResponse(payload=tracked_document(encrypted=False))})

    data = fetch_and_decode("https://github.com/octo/widgets", session=session, branches=("trunk",))

    assert data.session_stats.total_ai_lines == 8


def test_fetch_and_decode_rejects_invalid_url() -> None:
    with pytest.raises(RemoteFetchError, match="Invalid GitHub URL"):
        fetch_and_decode("https://example.com/nothing", session=StubSession({}))


def test_remote_stats_without_workspace_id_need_override() -> None:
    document = tracked_document()
    del document["workspaceId"]
    session = StubSession({raw("main"): StubResponse(payload=document)})

    with pytest.raises(FormatUnsupportedError) as excinfo:
        fetch_and_decode("https://github.com/octo/widgets", session=session)

    assert excinfo.value.shape == "missing-workspace-id"


def test_explicit_main_branch_still_falls_back_to_master() -> None:
    session = StubSession({raw("master"): StubResponse(payload=tracked_document())})

    data = fetch_and_decode("https://github.com/octo/widgets/tree/main", session=session)

    assert session.requested == [raw("main"), raw("master")]
    assert data.files["lib.py"].ai_lines == 8


def test_owned_session_is_closed(monkeypatch) -> None:
    created: list[StubSession] = []

    class ClosingSession(StubSession):
        def __init__(self) -> None:
            super().__init__({raw("main"): StubResponse(payload={"ok": True})})
            self.closed = False
            created.append(self)

        def __enter__(self) -> "ClosingSession":
            return self

        def __exit__(self, *exc_info) -> None:
            self.closed = True

    monkeypatch.setattr(remote.requests, "Session", ClosingSession)

    assert fetch_stats("octo", "widgets") == {"ok": True}
    assert len(created) == 1
    assert created[0].closed
