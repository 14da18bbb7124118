from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path

from auth.models import CredentialPair


class TokenStore(ABC):
    @abstractmethod
    async def get(self) -> CredentialPair | None:
        raise NotImplementedError

    @abstractmethod
    async def save(self, pair: CredentialPair) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove(self) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self, pair: CredentialPair | None = None) -> None:
        self._pair = pair

    async def get(self) -> CredentialPair | None:
        return self._pair

    async def save(self, pair: CredentialPair) -> None:
        self._pair = pair

    async def remove(self) -> None:
        self._pair = None


class FileTokenStore(TokenStore):
    def __init__(self, path: str | Path = ".tokens.json") -> None:
        self._path = Path(path)

    async def get(self) -> CredentialPair | None:
        payload = self._read()
        if not payload:
            return None
        try:
            return CredentialPair.from_payload(payload)
        except RuntimeError:
            # Half a pair cannot be refreshed; treat it as signed out.
            return None

    async def save(self, pair: CredentialPair) -> None:
        self._write(asdict(pair))

    async def remove(self) -> None:
        if self._path.exists():
            self._path.unlink()

    def _read(self) -> dict:
        if not self._path.exists():
            return {}

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError("Token store file is invalid; expected top-level JSON object.")
        return raw

    def _write(self, payload: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
