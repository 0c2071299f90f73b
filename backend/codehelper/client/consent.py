"""Research-consent flag kept on the local device."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from ..telemetry import emit_event
from .local_state import LocalStateStore
from .tristate import LOADING, Known, TriState

logger = logging.getLogger(__name__)

LEGACY_CONSENT_KEY = "research-consent"


def consent_key(user_id: str) -> str:
    return f"{LEGACY_CONSENT_KEY}-{user_id}"


def _participant_id() -> str:
    return f"participant_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ConsentRecord(BaseModel):
    """Stored under the camelCase keys earlier releases of the web client wrote."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    given: StrictBool = Field(alias="hasConsented")
    consent_date: datetime = Field(alias="consentDate")
    participant_id: str = Field(default="", alias="participantId")

    @field_validator("user_id", mode="before")
    @classmethod
    def _blank_owner_is_none(cls, value: object) -> object:
        return value or None


class ConsentGate:
    """Loads each user's consent once, then serves it from memory.

    A record stored under the legacy global key only counts when it names the
    same user; it is removed the next time a per-user record is saved.
    """

    def __init__(self, store: LocalStateStore) -> None:
        self._store = store
        self._loaded: Dict[str, bool] = {}

    def status(self, user_id: str) -> TriState[bool]:
        if user_id not in self._loaded:
            return LOADING
        return Known(self._loaded[user_id])

    async def load(self, user_id: str) -> bool:
        if user_id not in self._loaded:
            record = await asyncio.to_thread(self.read_record, user_id)
            self._loaded[user_id] = bool(record and record.given)
        return self._loaded[user_id]

    def read_record(self, user_id: str) -> Optional[ConsentRecord]:
        record = self._store.load(consent_key(user_id), ConsentRecord)
        if record is not None and record.user_id == user_id:
            return record
        legacy = self._store.load(LEGACY_CONSENT_KEY, ConsentRecord)
        if legacy is not None and legacy.user_id == user_id:
            return legacy
        return None

    def record(self, user_id: str, given: bool) -> ConsentRecord:
        record = ConsentRecord(
            user_id=user_id,
            given=given,
            consent_date=datetime.now(timezone.utc),
            participant_id=_participant_id(),
        )
        self._store.save(consent_key(user_id), record)
        self._store.remove(LEGACY_CONSENT_KEY)
        self._loaded[user_id] = given
        emit_event("research_consent_recorded", user_id=user_id, given=given, participant_id=record.participant_id)
        return record

    def clear(self, user_id: str) -> None:
        self._store.remove(consent_key(user_id))
        self._store.remove(LEGACY_CONSENT_KEY)
        self._loaded.pop(user_id, None)


__all__ = ["ConsentGate", "ConsentRecord", "LEGACY_CONSENT_KEY", "consent_key"]
