"""
CryptoWallet Session Store
===========================
Persists the locally authenticated identity between runs.

One record per identity kind, stored under a namespaced key
(cryptowallet.user / cryptowallet.admin) as the identity's JSON. Only one
kind is ever populated: storing one clears the other.

A malformed record never fails the caller: it is dropped and the app
degrades to the logged-out state. There is no client-side expiry.
"""

import logging
import os
from typing import Dict, Optional

from pydantic import ValidationError

from core.models import IDENTITY_MODELS, Identity, IdentityKind

logger = logging.getLogger("cryptowallet.session")

KEY_PREFIX = "cryptowallet"


def session_key(kind: IdentityKind) -> str:
    return f"{KEY_PREFIX}.{IdentityKind(kind).value}"


# ── Storage backends ──────────────────────────────────────────────────────────

class MemoryStorage:
    """Process-local key/value storage."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class FileStorage:
    """One UTF-8 file per key inside `directory` (created on first write)."""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def read(self, key: str) -> Optional[str]:
        try:
            with open(self._path(key), "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def write(self, key: str, value: str) -> None:
        os.makedirs(self.directory, exist_ok=True)
        tmp = self._path(key) + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(value)
        os.replace(tmp, self._path(key))

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def __contains__(self, key: str) -> bool:
        return os.path.exists(self._path(key))


# ── Session store ─────────────────────────────────────────────────────────────

class SessionStore:

    def __init__(self, storage=None):
        self.storage = storage if storage is not None else MemoryStorage()

    def get(self, kind: IdentityKind) -> Optional[Identity]:
        """Persisted identity for `kind`, or None. Corrupt records are removed."""
        kind = IdentityKind(kind)
        key  = session_key(kind)
        try:
            raw = self.storage.read(key)
            if raw is None:
                return None
            return IDENTITY_MODELS[kind].model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding corrupt session record {key}: "
                           f"{e.error_count()} error(s)")
        except UnicodeDecodeError as e:
            logger.warning(f"Discarding unreadable session record {key}: {e.reason}")
        self.storage.delete(key)
        return None

    def set(self, kind: IdentityKind, identity: Identity) -> None:
        kind = IdentityKind(kind)
        if not isinstance(identity, IDENTITY_MODELS[kind]):
            raise TypeError(f"{type(identity).__name__} cannot be stored as {kind.value}")
        for other in IdentityKind:
            if other is not kind:
                self.clear(other)
        self.storage.write(session_key(kind), identity.model_dump_json(by_alias=True))
        logger.info(f"Session stored for {kind.value} {identity.username!r}")

    def clear(self, kind: IdentityKind) -> None:
        self.storage.delete(session_key(IdentityKind(kind)))

    def clear_all(self) -> None:
        for kind in IdentityKind:
            self.clear(kind)

    def current(self) -> Optional[Identity]:
        """Whichever single identity is persisted, if any."""
        for kind in IdentityKind:
            identity = self.get(kind)
            if identity is not None:
                return identity
        return None
