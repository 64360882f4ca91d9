"""
CryptoWallet API Client
========================
Every wallet, transaction, auth and admin-dashboard operation goes through
the backend REST API via this client.

The HTTP layer is stdlib urllib. Each public method is a coroutine: the
blocking request runs in a worker thread (asyncio.to_thread) so the event
loop is never stalled. All methods raise ApiError on failure; controllers
catch it and display the message.
"""

import asyncio
import json
import logging
import ssl
import urllib.error
import urllib.parse
import urllib.request
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from config import CONFIG, get_api_url
from core.models import (
    Admin, AdminProfileUpdate, AuthResponse, ChangePasswordRequest, CryptoCurrency,
    IdentityKind, Page, SendTransactionRequest, SystemStats, Transaction, User,
    Wallet, WalletCreation, WireModel,
)

logger = logging.getLogger("cryptowallet.api")


# resource name -> row model for the admin dashboard listings
RESOURCE_MODELS = {
    "users":        User,
    "wallets":      Wallet,
    "transactions": Transaction,
}

# identity kind -> auth namespace
AUTH_NAMESPACES = {
    IdentityKind.USER:  "users",
    IdentityKind.ADMIN: "admin",
}


class ApiError(RuntimeError):
    """Remote failure. `status` is the HTTP status, None for network errors."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _query_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _decode(raw: bytes) -> Any:
    """JSON when possible; plain-text bodies come back as str, empty as None."""
    text = raw.decode("utf-8") if raw else ""
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def _message_of(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            if payload.get(key):
                return str(payload[key])
    elif isinstance(payload, str) and payload.strip():
        return payload.strip()
    return fallback


class ApiClient:
    """
    Async REST client for the wallet backend.

    Example:
        >>> client = ApiClient("http://localhost:8080/api")
        >>> wallets = await client.get_user_wallets(7)
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 verify_ssl: Optional[bool] = None):
        self.base_url   = (base_url or CONFIG["api_base_url"]).rstrip("/")
        self.timeout    = timeout if timeout is not None else CONFIG.get("timeout", 15.0)
        self.verify_ssl = verify_ssl if verify_ssl is not None else CONFIG.get("verify_ssl", False)

    def _ssl_context(self) -> ssl.SSLContext:
        """Skip verification for self-signed certs unless verify_ssl is set."""
        ctx = ssl.create_default_context()
        if not self.verify_ssl:
            ctx.check_hostname = False
            ctx.verify_mode    = ssl.CERT_NONE
        return ctx

    def _request(self, method: str, path: str, body: Optional[dict] = None,
                 params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Blocking HTTP round trip. Raises ApiError with a human-readable
        message on any failure.
        """
        url = get_api_url(path, base=self.base_url)
        if params:
            query = {k: _query_value(v) for k, v in params.items() if v is not None}
            if query:
                url = f"{url}?{urllib.parse.urlencode(query)}"

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        data    = json.dumps(body, default=_json_default).encode("utf-8") if body is not None else None
        req     = urllib.request.Request(url, data=data, headers=headers, method=method)

        logger.debug(f"{method} {url}")
        try:
            with urllib.request.urlopen(req, context=self._ssl_context(),
                                        timeout=self.timeout) as resp:
                return _decode(resp.read())
        except urllib.error.HTTPError as e:
            try:
                payload = _decode(e.read())
            except OSError:
                payload = None
            message = _message_of(payload, f"{e.code} {e.reason}")
            logger.warning(f"{method} {path} failed ({e.code}): {message}")
            raise ApiError(message, status=e.code) from e
        except urllib.error.URLError as e:
            logger.error(f"{method} {path} unreachable: {e.reason}")
            raise ApiError(
                f"Cannot connect to server at {self.base_url}.\n"
                f"Make sure the server is running.\n({e.reason})"
            ) from e
        except (OSError, ValueError) as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiError(f"Request failed: {e}") from e

    async def _call(self, method: str, path: str, body: Optional[dict] = None,
                    params: Optional[Dict[str, Any]] = None) -> Any:
        return await asyncio.to_thread(self._request, method, path, body, params)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._call("GET", path, params=params)

    async def _post(self, path: str, body: Optional[dict] = None) -> Any:
        return await self._call("POST", path, body=body if body is not None else {})

    async def _put(self, path: str, body: Optional[dict] = None) -> Any:
        return await self._call("PUT", path, body=body)

    async def _delete(self, path: str) -> Any:
        return await self._call("DELETE", path)

    @staticmethod
    def _parse(model, payload: Any, what: str):
        try:
            return model.model_validate(payload)
        except ValueError as e:
            raise ApiError(f"Unexpected {what} response from server: {e}") from e

    # ── Auth ──────────────────────────────────────────────────────────────────

    async def login(self, kind: IdentityKind, credentials: WireModel) -> AuthResponse:
        """POST /{users|admin}/login → {message, user|admin, success}."""
        data = await self._post(f"{AUTH_NAMESPACES[kind]}/login", credentials.to_wire())
        return self._parse(AuthResponse, data, "login")

    async def register(self, kind: IdentityKind, registration: WireModel) -> AuthResponse:
        """POST /{users|admin}/register → {message, user|admin, success}."""
        data = await self._post(f"{AUTH_NAMESPACES[kind]}/register", registration.to_wire())
        return self._parse(AuthResponse, data, "registration")

    # ── Wallets ───────────────────────────────────────────────────────────────

    async def create_wallet(self, user_id: int, currency: CryptoCurrency) -> Wallet:
        data = await self._post(f"wallets/user/{user_id}",
                                WalletCreation(currency=currency).to_wire())
        return self._parse(Wallet, data, "wallet")

    async def get_user_wallets(self, user_id: int) -> List[Wallet]:
        data = await self._get(f"wallets/user/{user_id}")
        return [self._parse(Wallet, w, "wallet") for w in data or []]

    async def refresh_wallet_balance(self, wallet_id: int) -> None:
        await self._post(f"wallets/{wallet_id}/refresh-balance")

    async def deactivate_wallet(self, wallet_id: int) -> None:
        await self._delete(f"wallets/{wallet_id}")

    # ── Transactions ──────────────────────────────────────────────────────────

    async def send_transaction(self, request: SendTransactionRequest) -> Transaction:
        data = await self._post("transactions/send", request.to_wire())
        return self._parse(Transaction, data, "transaction")

    async def get_wallet_transactions(self, wallet_id: int) -> List[Transaction]:
        data = await self._get(f"transactions/wallet/{wallet_id}")
        return [self._parse(Transaction, t, "transaction") for t in data or []]

    async def get_user_transactions(self, user_id: int) -> List[Transaction]:
        data = await self._get(f"transactions/user/{user_id}")
        return [self._parse(Transaction, t, "transaction") for t in data or []]

    # ── Admin dashboard listings ──────────────────────────────────────────────

    async def list_resource(self, resource: str, page: int, size: int, sort_by: str,
                            sort_dir: str, filters: Optional[Dict[str, Any]] = None) -> Page:
        """GET /admin/dashboard/{resource}. Filters with a None value are not sent."""
        params = {"page": page, "size": size, "sortBy": sort_by, "sortDir": sort_dir}
        params.update(filters or {})
        data = await self._get(f"admin/dashboard/{resource}", params=params)
        return self._parse(Page[RESOURCE_MODELS[resource]], data, f"{resource} page")

    async def search_resource(self, resource: str, query: str, page: int, size: int,
                              sort_by: str, sort_dir: str) -> Page:
        params = {"query": query, "page": page, "size": size,
                  "sortBy": sort_by, "sortDir": sort_dir}
        data = await self._get(f"admin/dashboard/{resource}/search", params=params)
        return self._parse(Page[RESOURCE_MODELS[resource]], data, f"{resource} page")

    async def toggle_resource_status(self, resource: str, item_id: int) -> None:
        await self._put(f"admin/dashboard/{resource}/{item_id}/toggle-status")

    async def admin_refresh_wallet_balance(self, wallet_id: int) -> None:
        await self._post(f"admin/dashboard/wallets/{wallet_id}/refresh-balance")

    async def get_system_stats(self) -> SystemStats:
        data = await self._get("admin/dashboard/stats")
        return self._parse(SystemStats, data, "stats")

    # ── Admin account ─────────────────────────────────────────────────────────

    async def update_admin(self, admin_id: int, profile: AdminProfileUpdate) -> Admin:
        data = await self._put(f"admin/{admin_id}", profile.to_wire())
        return self._parse(Admin, data, "admin")

    async def change_admin_password(self, admin_id: int, request: ChangePasswordRequest) -> str:
        """Returns the server's confirmation text."""
        data = await self._post(f"admin/{admin_id}/change-password", request.to_wire())
        return _message_of(data, "Password changed successfully")

    # ── Health ────────────────────────────────────────────────────────────────

    async def ping(self) -> bool:
        """True when the server answers at all (any HTTP status)."""
        try:
            await self._get("admin/dashboard/stats")
        except ApiError as e:
            return e.status is not None
        return True
