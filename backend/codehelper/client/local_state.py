"""Per-device key/value state persisted as JSON files."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class LocalStateStore:
    """Stores one JSON document per key under ``root``. Nothing here is synced across devices.

    ``load``/``save`` round-trip pydantic records using their field aliases;
    ``get``/``set`` work on the raw documents.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key)
        if not safe:
            raise ValueError("Local state key cannot be empty.")
        return self.root / f"{safe}.json"

    def load(self, key: str, model: Type[ModelT]) -> Optional[ModelT]:
        payload = self.get(key)
        if payload is None:
            return None
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Discarding malformed %s stored under %s: %s", model.__name__, key, exc)
            return None

    def save(self, key: str, record: BaseModel) -> None:
        self.set(key, record.model_dump(mode="json", by_alias=True))

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable local state %s: %s", path, exc)
            return None
        return payload if isinstance(payload, dict) else None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(value, handle, indent=2, sort_keys=True)
        tmp_path.replace(path)

    def remove(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


__all__ = ["LocalStateStore"]
