"""
studio_producer/session_store.py — Keyed production state.

One ProductionSession per run, addressed by an opaque id created by the
Content stage's plan_video tool. Stages never touch the store directly;
only tool executors read and write it. Stores are injected at construction
time; there is no module-level store.
"""

import json
import logging
import os
import random
import re
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from studio_producer.errors import SessionNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ProductionSession:
    session_id: str
    topic: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    current_step: str = "created"
    imported_content: Optional[Dict[str, Any]] = None
    content_plan: Optional[Dict[str, Any]] = None
    narration_segments: List[Dict[str, Any]] = field(default_factory=list)
    visuals: List[Dict[str, Any]] = field(default_factory=list)
    sfx_plan: Optional[Dict[str, Any]] = None
    quality_score: int = 0
    best_quality_score: int = 0
    quality_iterations: int = 0
    mixed_audio: Optional[Dict[str, Any]] = None
    subtitles: Optional[Dict[str, Any]] = None
    export_result: Optional[Dict[str, Any]] = None
    cloud_upload: Optional[Dict[str, Any]] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)
    is_complete: bool = False

    @property
    def scene_count(self) -> int:
        if not self.content_plan:
            return 0
        return len(self.content_plan.get("scenes") or [])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductionSession":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def summary(self) -> Dict[str, Any]:
        """Compact view for status endpoints and logs."""
        return {
            "sessionId": self.session_id,
            "topic": self.topic,
            "currentStep": self.current_step,
            "scenes": self.scene_count,
            "narrations": len(self.narration_segments),
            "visuals": len(self.visuals),
            "sfx": len((self.sfx_plan or {}).get("scenes") or []),
            "qualityScore": self.quality_score,
            "bestQualityScore": self.best_quality_score,
            "subtitles": bool(self.subtitles),
            "exported": bool(self.export_result),
            "cloudUpload": bool(self.cloud_upload),
            "updatedAt": self.updated_at,
        }


# ---------------------------------------------------------------------------
# Session ids
# ---------------------------------------------------------------------------
SESSION_PREFIXES = ("prod_", "story_")

_PLACEHOLDER_RE = re.compile(r"^(plan_\d+|cp_\d+|session_\d+|plan_\w{3,8}|cp_\w{3,8})$")
_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> str:
    """Return a fresh id of the form prod_<epoch-ms>_<9 base36 chars>."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"prod_{int(time.time() * 1000)}_{suffix}"


def is_valid_session_id(value: Optional[str]) -> bool:
    """True for real session ids, False for empty or placeholder-looking values."""
    if not value:
        return False
    if _PLACEHOLDER_RE.match(value):
        return False
    return value.startswith(SESSION_PREFIXES)


def check_session_reference(value: Optional[str], store: "SessionStore") -> Optional[Dict[str, Any]]:
    """Return a structured error payload if ``value`` cannot address a session, else None."""
    if not value:
        return {
            "success": False,
            "error": "Missing session_id. You must provide the sessionId returned by plan_video.",
        }
    if _PLACEHOLDER_RE.match(value):
        return {
            "success": False,
            "error": (
                f'Invalid session_id: "{value}". You must use the ACTUAL sessionId returned by '
                f"plan_video. Never use placeholder values."
            ),
        }
    if not value.startswith(SESSION_PREFIXES):
        return {
            "success": False,
            "error": (
                f'Invalid session_id format: "{value}". Expected format: prod_TIMESTAMP_HASH. '
                f"Make sure you are using the exact sessionId returned by plan_video."
            ),
        }
    if value not in store:
        return {
            "success": False,
            "error": f'Content plan not found for sessionId "{value}". Use the sessionId from your instructions.',
        }
    return None


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------
class SessionStore(ABC):
    """Keyed map of ProductionSession, accessed by session id only."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[ProductionSession]:
        ...

    @abstractmethod
    def set(self, session_id: str, session: ProductionSession) -> None:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        ...

    def __contains__(self, session_id: object) -> bool:
        return isinstance(session_id, str) and self.get(session_id) is not None

    def require(self, session_id: str) -> ProductionSession:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def update(self, session_id: str, **changes) -> ProductionSession:
        """Apply field changes to a session and stamp updated_at."""
        session = self.require(session_id)
        for key, value in changes.items():
            if not hasattr(session, key):
                raise AttributeError(f"ProductionSession has no field '{key}'")
            setattr(session, key, value)
        session.updated_at = time.time()
        self.set(session_id, session)
        return session

    def create(self, topic: str = "", session_id: Optional[str] = None) -> ProductionSession:
        session = ProductionSession(session_id=session_id or generate_session_id(), topic=topic)
        self.set(session.session_id, session)
        logger.info(f"[SessionStore] Session created: {session.session_id}")
        return session


class InMemorySessionStore(SessionStore):

    def __init__(self):
        self._sessions: Dict[str, ProductionSession] = {}

    def get(self, session_id: str) -> Optional[ProductionSession]:
        return self._sessions.get(session_id)

    def set(self, session_id: str, session: ProductionSession) -> None:
        self._sessions[session_id] = session

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self):
        return len(self._sessions)


class JsonFileSessionStore(SessionStore):
    """One JSON file per session so a production survives a process restart."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, session_id: str) -> Path:
        if not re.fullmatch(r"[A-Za-z0-9_\-]+", session_id):
            raise ValueError(f"Unsafe session id for file store: {session_id!r}")
        return self.directory / f"{session_id}.json"

    def get(self, session_id: str) -> Optional[ProductionSession]:
        try:
            path = self._path(session_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            return ProductionSession.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"[SessionStore] Corrupt session file {path.name}: {e}")
            return None

    def set(self, session_id: str, session: ProductionSession) -> None:
        path = self._path(session_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(session.to_dict(), indent=2, default=str), encoding="utf-8")
        os.replace(tmp, path)

    def delete(self, session_id: str) -> bool:
        try:
            path = self._path(session_id)
        except ValueError:
            return False
        if path.exists():
            path.unlink()
            return True
        return False
