"""
CryptoWallet Admin Controllers
===============================
System statistics, admin account settings, and the console that bundles
them with the three paginated listings.

Stats are fetched on activation and on explicit refresh only, never polled.
Health signals are derived from the current snapshot on every access.
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple, Union

from pydantic import ValidationError

from api_client import ApiError
from core.auth import AuthGateway, validation_message
from core.models import (
    Admin, AdminProfileUpdate, AdminRegistration, ChangePasswordRequest, IdentityKind,
    SystemStats,
)
from core.pagination import TRANSACTIONS, USERS, WALLETS, PaginatedResourceView

logger = logging.getLogger("cryptowallet.admin")

QUEUE_HIGH_WATERMARK   = 10
HEALTHY_FAILURE_RATIO  = Decimal("0.05")


# ── Stats ─────────────────────────────────────────────────────────────────────

class AdminStatsView:

    def __init__(self, api):
        self.api     = api
        self.stats: Optional[SystemStats] = None
        self.loading = False
        self.error: Optional[str] = None

    async def activate(self) -> bool:
        return await self.refresh()

    async def refresh(self) -> bool:
        self.loading = True
        try:
            stats = await self.api.get_system_stats()
        except ApiError as e:
            self.error = f"Failed to load system statistics: {e}"
            logger.error(self.error)
            return False
        finally:
            self.loading = False
        self.stats = stats
        self.error = None
        return True

    @property
    def queue_pressure(self) -> Optional[str]:
        if self.stats is None:
            return None
        return "High" if self.stats.pending_transactions >= QUEUE_HIGH_WATERMARK else "Normal"

    @property
    def failure_rate(self) -> Optional[Decimal]:
        """failed / total as a fraction; 0 when there are no transactions."""
        if self.stats is None:
            return None
        total = self.stats.total_transactions
        if total == 0:
            return Decimal("0")
        return Decimal(self.stats.failed_transactions) / Decimal(total)

    def failure_rate_display(self) -> str:
        rate = self.failure_rate
        if rate is None:
            return "N/A"
        if self.stats.total_transactions == 0:
            return "0%"
        return f"{rate * 100:.2f}%"

    @property
    def failure_rate_healthy(self) -> Optional[bool]:
        rate = self.failure_rate
        if rate is None:
            return None
        return rate < HEALTHY_FAILURE_RATIO


# ── Settings ──────────────────────────────────────────────────────────────────

Message = Tuple[str, str]   # ("success" | "error", text)


class AdminSettings:

    def __init__(self, api, auth: AuthGateway):
        self.api  = api
        self.auth = auth
        self.message: Optional[Message] = None

    @property
    def admin(self) -> Admin:
        current = self.auth.current
        if not isinstance(current, Admin):
            raise RuntimeError("admin settings require an admin session")
        return current

    def _fail(self, text: str) -> bool:
        self.message = ("error", text)
        return False

    async def update_profile(self, email: str, first_name: str, last_name: str) -> bool:
        try:
            profile = AdminProfileUpdate(email=email, first_name=first_name, last_name=last_name)
        except ValidationError as e:
            return self._fail(validation_message(e))
        try:
            updated = await self.api.update_admin(self.admin.id, profile)
        except ApiError as e:
            logger.error(f"Profile update failed: {e}")
            return self._fail(str(e) or "Failed to update profile")
        self.auth.replace_identity(updated)
        self.message = ("success", "Profile updated successfully")
        return True

    async def change_password(self, current_password: str, new_password: str,
                              confirm_password: str) -> bool:
        if new_password != confirm_password:
            return self._fail("New passwords do not match")
        try:
            request = ChangePasswordRequest(current_password=current_password,
                                            new_password=new_password)
        except ValidationError as e:
            return self._fail(validation_message(e))
        try:
            text = await self.api.change_admin_password(self.admin.id, request)
        except ApiError as e:
            logger.warning(f"Password change refused for admin {self.admin.id}: {e}")
            return self._fail(str(e) or "Failed to change password")
        self.message = ("success", text)
        return True

    async def create_admin(self, registration: Union[AdminRegistration, dict]) -> Optional[Admin]:
        """Register another admin. The current session is left untouched."""
        try:
            if not isinstance(registration, AdminRegistration):
                registration = AdminRegistration.model_validate(registration)
        except ValidationError as e:
            self._fail(validation_message(e))
            return None
        try:
            response = await self.api.register(IdentityKind.ADMIN, registration)
        except ApiError as e:
            self._fail(str(e) or "Failed to create admin")
            return None
        if not response.success or response.admin is None:
            self._fail(response.message or "Failed to create admin")
            return None
        self.message = ("success", f"Admin {response.admin.username} created successfully")
        return response.admin


# ── Console ───────────────────────────────────────────────────────────────────

class AdminConsole:
    """Everything an authenticated admin works with."""

    def __init__(self, api, auth: AuthGateway, page_size: int = 10):
        self.stats        = AdminStatsView(api)
        self.users        = PaginatedResourceView(api, USERS, size=page_size)
        self.wallets      = PaginatedResourceView(api, WALLETS, size=page_size)
        self.transactions = PaginatedResourceView(api, TRANSACTIONS, size=page_size)
        self.settings     = AdminSettings(api, auth)

    async def activate(self) -> bool:
        return await self.stats.activate()
