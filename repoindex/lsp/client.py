"""Minimal Language Server Protocol client over stdio."""

from __future__ import annotations

import itertools
import json
import os
import subprocess
import threading
from concurrent.futures import Future, InvalidStateError, TimeoutError as FutureTimeout
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Optional, Sequence

from ..errors import BackendUnavailable, ParseError, ProtocolError, RequestTimeout
from ..logging import get_logger

logger = get_logger("lsp.client")

Spawner = Callable[..., "subprocess.Popen[bytes]"]


def read_message(stream: IO[bytes]) -> Optional[Dict[str, Any]]:
    """Read one ``Content-Length`` framed JSON-RPC message; None on EOF."""
    content_length: Optional[int] = None
    while True:
        line = stream.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            break
        name, _, value = line.decode("ascii", errors="replace").partition(":")
        if name.strip().lower() == "content-length":
            try:
                content_length = int(value.strip())
            except ValueError as exc:
                raise ProtocolError(f"Invalid Content-Length header: {value!r}") from exc
    if content_length is None:
        raise ProtocolError("Message without Content-Length header")
    body = stream.read(content_length)
    if len(body) < content_length:
        return None
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Malformed JSON-RPC payload: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError("JSON-RPC payload is not an object")
    return message


def encode_message(message: Dict[str, Any]) -> bytes:
    body = json.dumps(message, separators=(",", ":")).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


class LanguageServerClient:
    """Persistent session with one language server process.

    Requests may be issued from several threads at once; responses are
    matched by id on a dedicated reader thread.
    """

    def __init__(
        self,
        command: Sequence[str],
        root: Path,
        *,
        name: Optional[str] = None,
        initialization_options: Optional[Dict[str, Any]] = None,
        spawn: Spawner = subprocess.Popen,
    ) -> None:
        self.command = list(command)
        self.root = root
        self.name = name or (self.command[0] if self.command else "language-server")
        self.capabilities: Dict[str, Any] = {}
        self._initialization_options = initialization_options or {}
        self._spawn = spawn
        self._process: Optional["subprocess.Popen[bytes]"] = None
        self._reader: Optional[threading.Thread] = None
        self._ids = itertools.count(1)
        self._pending: Dict[int, Future] = {}
        self._pending_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._diagnostics: Dict[str, List[Dict[str, Any]]] = {}
        self._diagnostics_ready = threading.Condition()
        self._versions: Dict[str, int] = {}
        self._stopping = False
        self._reader_done = threading.Event()

    @property
    def is_running(self) -> bool:
        return (
            self._process is not None
            and self._process.poll() is None
            and self._reader is not None
            and not self._reader_done.is_set()
            and not self._stopping
        )

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self, timeout: float) -> Dict[str, Any]:
        """Spawn the server and perform the ``initialize`` handshake."""
        try:
            self._process = self._spawn(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                cwd=str(self.root),
            )
        except OSError as exc:
            raise BackendUnavailable(f"Cannot start {self.name}: {exc}") from exc

        self._reader = threading.Thread(
            target=self._read_loop, name=f"lsp-{self.name}", daemon=True
        )
        self._reader.start()

        params = {
            "processId": os.getpid(),
            "rootUri": self.root.as_uri(),
            "rootPath": str(self.root),
            "workspaceFolders": [{"uri": self.root.as_uri(), "name": self.root.name}],
            "capabilities": {
                "textDocument": {
                    "documentSymbol": {"hierarchicalDocumentSymbolSupport": True},
                    "publishDiagnostics": {"relatedInformation": False},
                    "synchronization": {"didSave": False},
                },
                "workspace": {"workspaceFolders": True, "configuration": True},
            },
            "initializationOptions": self._initialization_options,
        }
        try:
            result = self.request("initialize", params, timeout=timeout)
        except ParseError as exc:
            self._terminate()
            raise BackendUnavailable(f"{self.name} handshake failed: {exc}") from exc

        self.capabilities = result.get("capabilities", {}) if isinstance(result, dict) else {}
        self.notify("initialized", {})
        logger.debug("Language server %s initialized", self.name)
        return self.capabilities

    def stop(self, timeout: float = 5.0) -> None:
        """Shut the server down politely, killing it if it does not exit."""
        if self._process is None:
            return
        if self.is_running:
            try:
                self.request("shutdown", None, timeout=timeout)
                self.notify("exit", None)
            except ParseError as exc:
                logger.debug("Shutdown of %s failed: %s", self.name, exc)
        self._stopping = True
        try:
            self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait(timeout=timeout)
        self._close_pipes()
        self._fail_pending(ProtocolError(f"{self.name} stopped"))

    def _terminate(self) -> None:
        self._stopping = True
        if self._process is not None and self._process.poll() is None:
            self._process.kill()
            try:
                self._process.wait(timeout=5.0)
            except subprocess.TimeoutExpired:
                logger.warning("Language server %s did not exit after kill", self.name)
        self._close_pipes()
        self._fail_pending(ProtocolError(f"{self.name} terminated"))

    def _close_pipes(self) -> None:
        if self._process is None:
            return
        if self._process.stdin is not None:
            try:
                self._process.stdin.close()
            except OSError:
                pass
        # The reader owns stdout until it sees EOF from the exited process.
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=1.0)
        if self._reader_done.is_set() and self._process.stdout is not None:
            self._process.stdout.close()

    # ------------------------------------------------------------------
    # Messaging

    def request(self, method: str, params: Any, *, timeout: float) -> Any:
        """Send a request and block up to ``timeout`` seconds for its result."""
        if not self.is_running:
            raise ProtocolError(f"{self.name} is not running")
        request_id = next(self._ids)
        future: Future = Future()
        with self._pending_lock:
            self._pending[request_id] = future
        try:
            self._write({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
            return future.result(timeout=timeout)
        except FutureTimeout as exc:
            raise RequestTimeout(
                f"{self.name} did not answer {method} within {timeout:.1f}s"
            ) from exc
        finally:
            with self._pending_lock:
                self._pending.pop(request_id, None)

    def notify(self, method: str, params: Any) -> None:
        self._write({"jsonrpc": "2.0", "method": method, "params": params})

    def open_document(self, uri: str, language_id: str, text: str) -> None:
        version = self._versions.get(uri, 0) + 1
        self._versions[uri] = version
        with self._diagnostics_ready:
            self._diagnostics.pop(uri, None)
        self.notify(
            "textDocument/didOpen",
            {
                "textDocument": {
                    "uri": uri,
                    "languageId": language_id,
                    "version": version,
                    "text": text,
                }
            },
        )

    def close_document(self, uri: str) -> None:
        self._versions.pop(uri, None)
        with self._diagnostics_ready:
            self._diagnostics.pop(uri, None)
        if self.is_running:
            self.notify("textDocument/didClose", {"textDocument": {"uri": uri}})

    def wait_for_diagnostics(self, uri: str, timeout: float) -> List[Dict[str, Any]]:
        """Return diagnostics published for ``uri``, waiting up to ``timeout``."""
        with self._diagnostics_ready:
            self._diagnostics_ready.wait_for(
                lambda: uri in self._diagnostics or not self.is_running, timeout=timeout
            )
            return list(self._diagnostics.get(uri, []))

    def _write(self, message: Dict[str, Any]) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise ProtocolError(f"{self.name} is not running")
        payload = encode_message(message)
        with self._write_lock:
            try:
                process.stdin.write(payload)
                process.stdin.flush()
            except (BrokenPipeError, OSError, ValueError) as exc:
                raise ProtocolError(f"Failed to write to {self.name}: {exc}") from exc

    def _read_loop(self) -> None:
        process = self._process
        assert process is not None and process.stdout is not None
        reason = f"{self.name} exited"
        try:
            while True:
                message = read_message(process.stdout)
                if message is None:
                    break
                self._dispatch(message)
        except ProtocolError as exc:
            reason = f"{self.name} sent an unreadable message: {exc}"
            logger.warning(reason)
        except (OSError, ValueError) as exc:
            reason = f"{self.name} stream closed: {exc}"
        finally:
            self._reader_done.set()
            self._fail_pending(ProtocolError(reason))
            with self._diagnostics_ready:
                self._diagnostics_ready.notify_all()

    def _dispatch(self, message: Dict[str, Any]) -> None:
        method = message.get("method")
        if method is None:
            self._resolve_response(message)
        elif "id" in message:
            self._answer_server_request(message["id"], method, message.get("params"))
        elif method == "textDocument/publishDiagnostics":
            params = message.get("params") or {}
            uri = params.get("uri")
            if isinstance(uri, str):
                items = params.get("diagnostics")
                with self._diagnostics_ready:
                    self._diagnostics[uri] = list(items) if isinstance(items, list) else []
                    self._diagnostics_ready.notify_all()

    def _resolve_response(self, message: Dict[str, Any]) -> None:
        request_id = message.get("id")
        with self._pending_lock:
            future = self._pending.get(request_id) if isinstance(request_id, int) else None
        if future is None:
            return
        error = message.get("error")
        try:
            if error is not None:
                detail = error.get("message", "unknown error") if isinstance(error, dict) else error
                code = error.get("code") if isinstance(error, dict) else None
                future.set_exception(ProtocolError(f"{self.name} error {code}: {detail}"))
            else:
                future.set_result(message.get("result"))
        except InvalidStateError:
            logger.debug("Late response for request %s from %s", request_id, self.name)

    def _answer_server_request(self, request_id: Any, method: str, params: Any) -> None:
        result: Any = None
        if method == "workspace/configuration" and isinstance(params, dict):
            result = [None for _ in params.get("items", [])]
        try:
            self._write({"jsonrpc": "2.0", "id": request_id, "result": result})
        except ProtocolError as exc:
            logger.debug("Could not answer %s from %s: %s", method, self.name, exc)

    def _fail_pending(self, error: Exception) -> None:
        with self._pending_lock:
            pending = list(self._pending.values())
        for future in pending:
            try:
                future.set_exception(error)
            except InvalidStateError:
                continue


__all__ = ["LanguageServerClient", "encode_message", "read_message"]
