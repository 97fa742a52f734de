"""Saved connection profiles.

A profile is a named host/username/port bundle the user can reopen by name.
Storage is a key-value collaborator: ``InMemoryProfileStore`` for tests and
ephemeral runs, ``JsonFileProfileStore`` for one JSON file per profile.
Passwords are never stored.

Lookups are case-insensitive on the profile name.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from .config import RDP_DEFAULTS
from .errors import handle_errors

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


def _key(name: str) -> str:
    return name.strip().lower()


@dataclass
class SessionProfile:
    name: str
    host: str
    username: str | None = None
    port: int = RDP_DEFAULTS.PORT
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    last_used: datetime | None = None
    use_count: int = 0
    created_by: str = "fallback"

    def matches(self, query: str) -> bool:
        q = query.strip().lower()
        if not q:
            return True
        haystack = [self.name, self.host, self.description or "", *self.tags]
        return any(q in item.lower() for item in haystack)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "host": self.host,
            "username": self.username,
            "port": self.port,
            "description": self.description,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat(),
            "last_used": self.last_used.isoformat() if self.last_used else None,
            "use_count": self.use_count,
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionProfile:
        last_used = data.get("last_used")
        created_at = data.get("created_at")
        return cls(
            name=data["name"],
            host=data["host"],
            username=data.get("username"),
            port=int(data.get("port") or RDP_DEFAULTS.PORT),
            description=data.get("description"),
            tags=list(data.get("tags") or []),
            created_at=datetime.fromisoformat(created_at) if created_at else _now(),
            last_used=datetime.fromisoformat(last_used) if last_used else None,
            use_count=int(data.get("use_count") or 0),
            created_by=data.get("created_by") or "fallback",
        )


class ProfileStore(Protocol):
    def save(self, profile: SessionProfile) -> bool: ...

    def load(self, name: str) -> SessionProfile | None: ...

    def delete(self, name: str) -> bool: ...

    def list_all(self) -> list[SessionProfile]: ...

    def search(self, query: str) -> list[SessionProfile]: ...

    def frequent(self, count: int = 5) -> list[SessionProfile]: ...

    def record_use(self, name: str) -> SessionProfile | None: ...


def _by_frequency(profiles: list[SessionProfile], count: int) -> list[SessionProfile]:
    floor = datetime.min.replace(tzinfo=UTC)
    ranked = sorted(profiles, key=lambda p: (p.use_count, p.last_used or floor), reverse=True)
    return ranked[: max(count, 0)]


class InMemoryProfileStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._profiles: dict[str, SessionProfile] = {}

    def save(self, profile: SessionProfile) -> bool:
        with self._lock:
            self._profiles[_key(profile.name)] = profile
        return True

    def load(self, name: str) -> SessionProfile | None:
        with self._lock:
            return self._profiles.get(_key(name))

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._profiles.pop(_key(name), None) is not None

    def list_all(self) -> list[SessionProfile]:
        with self._lock:
            return sorted(self._profiles.values(), key=lambda p: p.name.lower())

    def search(self, query: str) -> list[SessionProfile]:
        return [p for p in self.list_all() if p.matches(query)]

    def frequent(self, count: int = 5) -> list[SessionProfile]:
        return _by_frequency(self.list_all(), count)

    def record_use(self, name: str) -> SessionProfile | None:
        with self._lock:
            profile = self._profiles.get(_key(name))
            if profile is None:
                return None
            profile.use_count += 1
            profile.last_used = _now()
            return profile


class JsonFileProfileStore:
    """One ``<sanitized-name>.json`` file per profile under ``directory``.

    I/O failures are logged and reported as None / False.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._lock = threading.Lock()

    def _path(self, name: str) -> Path:
        safe = re.sub(r"[^a-z0-9._-]+", "_", _key(name)).strip("._") or "profile"
        return self.directory / f"{safe}.json"

    @handle_errors("save profile", default=False)
    def save(self, profile: SessionProfile) -> bool:
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self._path(profile.name)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(profile.to_dict(), indent=2), encoding="utf-8")
            tmp.replace(path)
        logger.debug("Saved profile %s to %s", profile.name, path)
        return True

    @handle_errors("load profile", log_level="warning", default=None)
    def load(self, name: str) -> SessionProfile | None:
        path = self._path(name)
        with self._lock:
            if not path.exists():
                return None
            data = json.loads(path.read_text(encoding="utf-8"))
        return SessionProfile.from_dict(data)

    @handle_errors("delete profile", default=False)
    def delete(self, name: str) -> bool:
        path = self._path(name)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
        return True

    def list_all(self) -> list[SessionProfile]:
        return list(self._read_all())

    @handle_errors("list profiles", log_level="warning", default=())
    def _read_all(self) -> Sequence[SessionProfile]:
        if not self.directory.exists():
            return []
        profiles: list[SessionProfile] = []
        with self._lock:
            for path in sorted(self.directory.glob("*.json")):
                try:
                    profiles.append(SessionProfile.from_dict(json.loads(path.read_text(encoding="utf-8"))))
                except (OSError, ValueError, KeyError) as exc:
                    logger.warning("Skipping unreadable profile %s: %s", path.name, exc)
        return sorted(profiles, key=lambda p: p.name.lower())

    def search(self, query: str) -> list[SessionProfile]:
        return [p for p in self.list_all() if p.matches(query)]

    def frequent(self, count: int = 5) -> list[SessionProfile]:
        return _by_frequency(self.list_all(), count)

    def record_use(self, name: str) -> SessionProfile | None:
        profile = self.load(name)
        if profile is None:
            return None
        profile.use_count += 1
        profile.last_used = _now()
        self.save(profile)
        return profile
