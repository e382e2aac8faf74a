"""Provider that replays a JSON-lines capture from ``gpuwatch --json --watch``."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from gpuwatch._errors import ProviderError
from gpuwatch._types import DeviceSnapshot

logger = logging.getLogger("gpuwatch.replay")


class ReplayProvider:
    """Returns one captured cycle per ``acquire()`` call.

    Each non-blank line of the capture is a JSON array of device objects in
    the acquisition wire schema. Lines are parsed lazily so a bad line fails
    only its own cycle.
    """

    def __init__(self, path: str | Path, *, loop: bool = False) -> None:
        self._path = Path(path)
        try:
            text = self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ProviderError(f"cannot read capture {self._path}: {exc}") from exc
        # (file line number, text) of every non-blank line
        self._lines = [
            (lineno, line)
            for lineno, line in enumerate(text.splitlines(), 1)
            if line.strip()
        ]
        self._loop = loop
        self._pos = 0
        logger.debug("Loaded %d cycles from %s", len(self._lines), self._path)

    def __len__(self) -> int:
        return len(self._lines)

    def acquire(self) -> list[DeviceSnapshot]:
        if self._pos >= len(self._lines):
            if not self._loop or not self._lines:
                raise ProviderError(f"capture {self._path} exhausted")
            self._pos = 0
        lineno, line = self._lines[self._pos]
        self._pos += 1
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ProviderError(f"{self._path}:{lineno}: invalid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise ProviderError(f"{self._path}:{lineno}: expected a JSON array of devices")
        return [DeviceSnapshot.from_dict(item) for item in payload]

    def shutdown(self) -> None:
        pass
