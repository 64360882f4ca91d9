"""
CryptoWallet Auth Gateway
==========================
Login and registration against the user or admin namespace.

The caller picks the mode first (switch_mode). The two modes are mutually
exclusive: switching clears the other mode's in-memory and persisted
identity. Every failure (client validation, bad credentials, server
validation, network) comes back as an AuthResult message, never as an
exception.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Type, Union

from pydantic import ValidationError

from api_client import ApiError
from core.models import (
    Admin, AdminRegistration, Credentials, IdentityKind, User, UserRegistration, WireModel,
)
from core.session import SessionStore

logger = logging.getLogger("cryptowallet.auth")


@dataclass(frozen=True)
class AuthResult:
    """Exactly one of identity / error is set."""
    identity: Optional[Union[User, Admin]] = None
    error: Optional[str] = None
    message: str = ""

    def __post_init__(self):
        if (self.identity is None) == (self.error is None):
            raise ValueError("AuthResult needs exactly one of identity or error")

    @property
    def ok(self) -> bool:
        return self.identity is not None


def validation_message(err: ValidationError) -> str:
    """First readable message out of a pydantic ValidationError."""
    first = err.errors()[0]
    msg   = first.get("msg", "Invalid input")
    return msg[len("Value error, "):] if msg.startswith("Value error, ") else msg


REGISTRATION_MODELS = {
    IdentityKind.USER:  UserRegistration,
    IdentityKind.ADMIN: AdminRegistration,
}


class AuthGateway:

    def __init__(self, api, sessions: SessionStore, mode: IdentityKind = IdentityKind.USER):
        self.api      = api
        self.sessions = sessions
        self.mode     = IdentityKind(mode)
        self.current: Optional[Union[User, Admin]] = None

    # ── Mode ──────────────────────────────────────────────────────────────────

    def switch_mode(self, mode: IdentityKind) -> None:
        """Select user/admin mode, dropping every trace of the other mode."""
        mode = IdentityKind(mode)
        for other in IdentityKind:
            if other is not mode:
                self.sessions.clear(other)
        if self.current is not None and self.current.kind != mode.value:
            self.current = None
        if mode is not self.mode:
            logger.info(f"Auth mode {self.mode.value} -> {mode.value}")
        self.mode = mode

    def restore(self, mode: Optional[IdentityKind] = None) -> Optional[Union[User, Admin]]:
        """Load the persisted identity for `mode` (default: current mode) at start-up."""
        if mode is not None:
            self.switch_mode(mode)
        self.current = self.sessions.get(self.mode)
        return self.current

    @property
    def is_authenticated(self) -> bool:
        return self.current is not None

    # ── Operations ────────────────────────────────────────────────────────────

    async def login(self, credentials: Union[Credentials, dict]) -> AuthResult:
        return await self._authenticate("login", Credentials, credentials)

    async def register(self, registration: Union[WireModel, dict]) -> AuthResult:
        return await self._authenticate("register", REGISTRATION_MODELS[self.mode], registration)

    def logout(self) -> None:
        who = self.current.username if self.current else None
        self.current = None
        self.sessions.clear_all()
        self.mode = IdentityKind.USER
        logger.info(f"Logged out {who!r}")

    def replace_identity(self, identity: Union[User, Admin]) -> None:
        """Swap in a server-refreshed copy of the logged-in identity."""
        if identity.kind != self.mode.value:
            raise ValueError(f"cannot replace a {self.mode.value} session with {identity.kind}")
        self.current = identity
        self.sessions.set(self.mode, identity)

    async def _authenticate(self, action: str, model: Type[WireModel], payload) -> AuthResult:
        mode = self.mode
        try:
            request = payload if isinstance(payload, model) else model.model_validate(payload)
        except ValidationError as e:
            return AuthResult(error=validation_message(e))

        try:
            if action == "login":
                response = await self.api.login(mode, request)
            else:
                response = await self.api.register(mode, request)
        except ApiError as e:
            logger.warning(f"{mode.value} {action} failed: {e}")
            return AuthResult(error=str(e) or f"{action.capitalize()} failed. Please try again.")

        identity = response.identity_for(mode)
        if not response.success or identity is None:
            fallback = "Login failed" if action == "login" else "Registration failed"
            return AuthResult(error=response.message or fallback)

        if mode is not self.mode:
            # mode switched while the request was in flight
            logger.info(f"Discarding {mode.value} {action} result after mode switch")
            return AuthResult(error="Login mode changed; please sign in again")

        self.current = identity
        self.sessions.set(mode, identity)
        logger.info(f"{mode.value} {identity.username!r} {action} ok")
        return AuthResult(identity=identity, message=response.message)
