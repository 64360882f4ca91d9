"""
CryptoWallet Paginated Resource View
=====================================
One controller for every admin listing (users, wallets, transactions).

State is {query, page, size, sort_field, sort_dir, filters}. load() sends
either the search call (non-empty query, filters ignored) or the list call
(filters forwarded) and replaces the held page wholesale.

Rules shared by every resource:
  - changing query, a filter, size or sort field resets page to 0
  - sorting on the current field flips direction (and resets page)
  - a newly selected sort field starts descending
  - row actions (toggle status, refresh balance) call the backend and
    then reload; nothing is patched locally and nothing is rolled back

Each load takes a generation token. A response that arrives after a newer
load started is dropped.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Generic, List, Optional, Tuple, TypeVar

from api_client import ApiError
from core.models import CryptoCurrency, Page, TransactionStatus, TransactionType

logger = logging.getLogger("cryptowallet.pagination")

T = TypeVar("T")

WINDOW_SIZE   = 5
DEFAULT_SORT  = "createdAt"


class SortDirection(str, Enum):
    ASC  = "asc"
    DESC = "desc"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


@dataclass(frozen=True)
class AdminResource:
    """Endpoint family + accepted filters for one admin listing."""
    name: str
    filters: Dict[str, Any]
    sort_fields: FrozenSet[str]
    can_refresh_balance: bool = False


# filter name -> parser applied to the value before it is stored
USERS = AdminResource(
    name="users",
    filters={"active": bool},
    sort_fields=frozenset({"id", "username", "email", "active", "createdAt"}),
)

WALLETS = AdminResource(
    name="wallets",
    filters={"currency": CryptoCurrency, "active": bool},
    sort_fields=frozenset({"id", "address", "currency", "balance", "active", "createdAt"}),
    can_refresh_balance=True,
)

TRANSACTIONS = AdminResource(
    name="transactions",
    filters={"status": TransactionStatus, "type": TransactionType},
    sort_fields=frozenset({"id", "txHash", "amount", "type", "status", "createdAt"}),
)


def page_window(number: int, total_pages: int, width: int = WINDOW_SIZE) -> List[int]:
    """
    0-based page numbers for the pager: at most `width` buttons around
    `number`, never outside [0, total_pages - 1].
    """
    if total_pages <= 0:
        return []
    start = max(0, min(number - width // 2, total_pages - width))
    return list(range(start, start + min(width, total_pages)))


@dataclass
class ViewState:
    query: str = ""
    page: int = 0
    size: int = 10
    sort_field: str = DEFAULT_SORT
    sort_dir: SortDirection = SortDirection.DESC
    filters: Dict[str, Any] = field(default_factory=dict)


class PaginatedResourceView(Generic[T]):

    def __init__(self, api, resource: AdminResource, size: int = 10,
                 sort_field: str = DEFAULT_SORT):
        self.api      = api
        self.resource = resource
        self.state    = ViewState(size=size, sort_field=sort_field)
        self.page: Page = Page.empty(size)
        self.loading  = False
        self.error: Optional[str] = None
        self._generation = 0

    # ── State transitions ─────────────────────────────────────────────────────

    def set_query(self, query: str) -> None:
        self.state.query = query or ""
        self.state.page  = 0

    def clear_query(self) -> None:
        self.set_query("")

    def set_filter(self, name: str, value: Any) -> None:
        """Set (or, with None, remove) a list filter. Resets to page 0."""
        if name not in self.resource.filters:
            raise ValueError(f"{self.resource.name} cannot be filtered by {name!r}")
        if value is None:
            self.state.filters.pop(name, None)
        else:
            parse = self.resource.filters[name]
            if parse is bool and not isinstance(value, bool):
                raise ValueError(f"{name} filter must be True, False or None")
            self.state.filters[name] = parse(value)
        self.state.page = 0

    def set_size(self, size: int) -> None:
        if size <= 0:
            raise ValueError("page size must be positive")
        self.state.size = size
        self.state.page = 0

    def sort_by(self, sort_field: str) -> None:
        """Same field flips direction; a new field starts descending."""
        if sort_field not in self.resource.sort_fields:
            raise ValueError(f"{self.resource.name} cannot be sorted by {sort_field!r}")
        if sort_field == self.state.sort_field:
            self.state.sort_dir = self.state.sort_dir.flipped()
        else:
            self.state.sort_field = sort_field
            self.state.sort_dir   = SortDirection.DESC
        self.state.page = 0

    def go_to_page(self, page: int) -> None:
        if page < 0:
            raise ValueError("page must be >= 0")
        self.state.page = page

    # ── Fetching ──────────────────────────────────────────────────────────────

    async def load(self) -> bool:
        """Fetch the page described by the current state. False on failure or staleness."""
        self._generation += 1
        generation = self._generation
        self.loading = True
        try:
            page = await self._fetch()
            if generation == self._generation and not page.in_range and page.total_pages > 0:
                # the result set shrank under us; fall back to its last page
                self.state.page = page.total_pages - 1
                page = await self._fetch()
        except ApiError as e:
            if generation != self._generation:
                return False
            self.loading = False
            self.error   = f"Failed to load {self.resource.name}: {e}"
            logger.error(self.error)
            return False

        if generation != self._generation:
            logger.debug(f"Dropping stale {self.resource.name} page (gen {generation})")
            return False
        self.loading = False
        self.error   = None
        self.page    = page
        return True

    async def _fetch(self) -> Page:
        s     = self.state
        query = s.query.strip()
        if query:
            return await self.api.search_resource(
                self.resource.name, query, s.page, s.size, s.sort_field, s.sort_dir.value)
        return await self.api.list_resource(
            self.resource.name, s.page, s.size, s.sort_field, s.sort_dir.value, dict(s.filters))

    async def search(self, query: str) -> bool:
        self.set_query(query)
        return await self.load()

    # ── Row actions ───────────────────────────────────────────────────────────

    async def toggle_status(self, item_id: int) -> bool:
        return await self._mutate(
            f"update {self.resource.name[:-1]} status",
            self.api.toggle_resource_status(self.resource.name, item_id))

    async def refresh_balance(self, wallet_id: int) -> bool:
        if not self.resource.can_refresh_balance:
            raise ValueError(f"{self.resource.name} rows have no balance to refresh")
        return await self._mutate(
            "refresh balance", self.api.admin_refresh_wallet_balance(wallet_id))

    async def _mutate(self, what: str, call) -> bool:
        try:
            await call
        except ApiError as e:
            self.error = f"Failed to {what}: {e}"
            logger.error(self.error)
            return False
        return await self.load()

    # ── Derived values ────────────────────────────────────────────────────────

    @property
    def rows(self) -> List[T]:
        return list(self.page.content)

    def page_window(self) -> List[int]:
        return page_window(self.page.number, self.page.total_pages)

    def showing_range(self) -> Tuple[int, int, int]:
        """1-based (first row, last row, total) for "Showing X to Y of Z"."""
        p = self.page
        if p.total_elements == 0:
            return (0, 0, 0)
        first = p.number * p.size + 1
        last  = min((p.number + 1) * p.size, p.total_elements)
        return (first, last, p.total_elements)

    def sort_indicator(self, sort_field: str) -> str:
        if sort_field != self.state.sort_field:
            return "↕"
        return "↑" if self.state.sort_dir is SortDirection.ASC else "↓"
