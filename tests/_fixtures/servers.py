"""Launch helpers for the scripted language server."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Tuple

FAKE_SERVER = Path(__file__).with_name("fake_language_server.py")


def fake_server_command(mode: str = "normal") -> Tuple[str, ...]:
    return (sys.executable, str(FAKE_SERVER), "--mode", mode)


__all__ = ["FAKE_SERVER", "fake_server_command"]
