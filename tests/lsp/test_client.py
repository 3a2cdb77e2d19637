from __future__ import annotations

import io
from pathlib import Path

import pytest

from repoindex.errors import BackendUnavailable, ProtocolError
from repoindex.lsp.client import LanguageServerClient, encode_message, read_message
from tests._fixtures.servers import fake_server_command


def test_encode_message_frames_json_body() -> None:
    payload = encode_message({"jsonrpc": "2.0", "id": 1, "result": None})

    header, _, body = payload.partition(b"\r\n\r\n")
    assert header == f"Content-Length: {len(body)}".encode("ascii")
    assert read_message(io.BytesIO(payload)) == {"jsonrpc": "2.0", "id": 1, "result": None}


def test_read_message_ignores_extra_headers() -> None:
    body = b'{"method":"initialized"}'
    stream = io.BytesIO(
        b"Content-Type: application/vscode-jsonrpc; charset=utf-8\r\n"
        + f"content-length: {len(body)}\r\n\r\n".encode("ascii")
        + body
    )

    assert read_message(stream) == {"method": "initialized"}
    assert read_message(stream) is None


def test_read_message_returns_none_on_truncated_body() -> None:
    assert read_message(io.BytesIO(b"Content-Length: 50\r\n\r\n{}")) is None


@pytest.mark.parametrize(
    "raw",
    [
        b"X-Other: 1\r\n\r\n{}",
        b"Content-Length: twelve\r\n\r\n{}",
        b"Content-Length: 3\r\n\r\n{x}",
        b"Content-Length: 2\r\n\r\n[]",
    ],
)
def test_read_message_rejects_malformed_frames(raw: bytes) -> None:
    with pytest.raises(ProtocolError):
        read_message(io.BytesIO(raw))


@pytest.fixture
def client(tmp_path: Path):
    session = LanguageServerClient(fake_server_command(), tmp_path, name="fake")
    yield session
    session.stop(timeout=2.0)


def test_client_handshake_and_document_lifecycle(client: LanguageServerClient, tmp_path: Path) -> None:
    capabilities = client.start(timeout=10.0)
    assert capabilities == {"documentSymbolProvider": True}
    assert client.is_running

    uri = (tmp_path / "mod.py").as_uri()
    client.open_document(uri, "python", "def helper():\n    return undefined_name\n")
    diagnostics = client.wait_for_diagnostics(uri, timeout=5.0)
    symbols = client.request("textDocument/documentSymbol", {"textDocument": {"uri": uri}}, timeout=5.0)
    client.close_document(uri)

    assert [item["range"]["start"]["line"] for item in diagnostics] == [1]
    assert [item["name"] for item in symbols] == ["helper"]


def test_client_surfaces_error_responses(client: LanguageServerClient) -> None:
    client.start(timeout=10.0)

    with pytest.raises(ProtocolError, match="-32601"):
        client.request("workspace/symbol", {"query": "x"}, timeout=5.0)


def test_requests_after_stop_fail(client: LanguageServerClient) -> None:
    client.start(timeout=10.0)
    client.stop(timeout=2.0)

    assert not client.is_running
    with pytest.raises(ProtocolError):
        client.request("shutdown", None, timeout=1.0)


def test_spawn_failure_is_backend_unavailable(tmp_path: Path) -> None:
    def refuse(*args, **kwargs):
        raise FileNotFoundError("no such binary")

    session = LanguageServerClient(["ghost-server"], tmp_path, spawn=refuse)

    with pytest.raises(BackendUnavailable):
        session.start(timeout=1.0)
