"""Scriptable stdio language server used by the semantic tier tests.

Usage: ``python fake_language_server.py [--mode MODE]`` where MODE is one of
``normal``, ``hang-initialize``, ``crash-initialize``, ``hang-symbols`` or
``crash-symbols``.
"""

from __future__ import annotations

import argparse
import json
import re
import sys
import time
from typing import Any, Dict, List, Optional

_DEF = re.compile(r"^(?P<indent>[ \t]*)def[ \t]+(?P<name>\w+)")
_CLASS = re.compile(r"^class[ \t]+(?P<name>\w+)")


def _read(stream) -> Optional[Dict[str, Any]]:
    length = None
    while True:
        line = stream.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            break
        name, _, value = line.decode("ascii").partition(":")
        if name.lower() == "content-length":
            length = int(value.strip())
    if length is None:
        return None
    return json.loads(stream.read(length).decode("utf-8"))


def _write(message: Dict[str, Any]) -> None:
    body = json.dumps(message).encode("utf-8")
    sys.stdout.buffer.write(f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body)
    sys.stdout.buffer.flush()


def _range(line: int, start: int, end: int) -> Dict[str, Any]:
    return {"start": {"line": line, "character": start}, "end": {"line": line, "character": end}}


def _symbols(text: str) -> List[Dict[str, Any]]:
    symbols: List[Dict[str, Any]] = []
    current: Optional[Dict[str, Any]] = None
    for number, line in enumerate(text.splitlines()):
        klass = _CLASS.match(line)
        if klass:
            span = _range(number, klass.start("name"), klass.end("name"))
            current = {
                "name": klass.group("name"),
                "kind": 5,
                "detail": "class",
                "range": span,
                "selectionRange": span,
                "children": [],
            }
            symbols.append(current)
            continue
        func = _DEF.match(line)
        if func:
            span = _range(number, func.start("name"), func.end("name"))
            entry = {
                "name": func.group("name"),
                "kind": 6 if func.group("indent") else 12,
                "detail": f"def {func.group('name')}(...) -> resolved",
                "range": span,
                "selectionRange": span,
            }
            if func.group("indent") and current is not None:
                current["children"].append(entry)
            else:
                current = None
                symbols.append(entry)
    return symbols


def _diagnostics(text: str) -> List[Dict[str, Any]]:
    found = []
    for number, line in enumerate(text.splitlines()):
        column = line.find("undefined_name")
        if column >= 0:
            found.append(
                {
                    "range": _range(number, column, column + len("undefined_name")),
                    "severity": 1,
                    "message": "\"undefined_name\" is not defined",
                    "source": "fake",
                }
            )
    return found


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--mode", default="normal")
    mode = parser.parse_args().mode

    documents: Dict[str, str] = {}
    stdin = sys.stdin.buffer
    while True:
        message = _read(stdin)
        if message is None:
            return 0
        method = message.get("method")
        params = message.get("params") or {}
        if method == "initialize":
            if mode == "crash-initialize":
                return 3
            if mode == "hang-initialize":
                time.sleep(60)
                return 0
            _write({"jsonrpc": "2.0", "id": message["id"], "result": {"capabilities": {"documentSymbolProvider": True}}})
        elif method == "textDocument/didOpen":
            document = params["textDocument"]
            documents[document["uri"]] = document["text"]
            _write(
                {
                    "jsonrpc": "2.0",
                    "method": "textDocument/publishDiagnostics",
                    "params": {"uri": document["uri"], "diagnostics": _diagnostics(document["text"])},
                }
            )
        elif method == "textDocument/didClose":
            documents.pop(params["textDocument"]["uri"], None)
        elif method == "textDocument/documentSymbol":
            if mode == "crash-symbols":
                return 4
            if mode == "hang-symbols":
                continue
            text = documents.get(params["textDocument"]["uri"], "")
            _write({"jsonrpc": "2.0", "id": message["id"], "result": _symbols(text)})
        elif method == "shutdown":
            _write({"jsonrpc": "2.0", "id": message["id"], "result": None})
        elif method == "exit":
            return 0
        elif "id" in message:
            _write({"jsonrpc": "2.0", "id": message["id"], "error": {"code": -32601, "message": "unsupported"}})


if __name__ == "__main__":
    sys.exit(main())
