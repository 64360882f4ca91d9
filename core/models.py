"""
CryptoWallet Data Models
=========================
Wire models shared by the REST client, the controllers and the dev server.

All models speak camelCase on the wire (txHash, totalPages, ...) and accept
snake_case by field name. Amounts are Decimal end to end.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ── Enums ─────────────────────────────────────────────────────────────────────

class CryptoCurrency(str, Enum):
    BITCOIN    = "BITCOIN"
    USDT_TRC20 = "USDT_TRC20"


class TransactionType(str, Enum):
    SEND    = "SEND"
    RECEIVE = "RECEIVE"


class TransactionStatus(str, Enum):
    PENDING   = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED    = "FAILED"


class AdminRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN       = "ADMIN"
    MODERATOR   = "MODERATOR"
    SUPPORT     = "SUPPORT"

    @property
    def rank(self) -> int:
        """Higher outranks lower. SUPER_ADMIN=4 ... SUPPORT=1."""
        return _ROLE_RANK[self]

    def outranks(self, other: "AdminRole") -> bool:
        return self.rank > other.rank


class IdentityKind(str, Enum):
    USER  = "user"
    ADMIN = "admin"


_ROLE_RANK = {
    AdminRole.SUPER_ADMIN: 4,
    AdminRole.ADMIN:       3,
    AdminRole.MODERATOR:   2,
    AdminRole.SUPPORT:     1,
}


# ── Display lookup tables ─────────────────────────────────────────────────────

CURRENCY_SYMBOLS = {
    CryptoCurrency.BITCOIN:    "BTC",
    CryptoCurrency.USDT_TRC20: "USDT",
}

CURRENCY_NAMES = {
    CryptoCurrency.BITCOIN:    "Bitcoin",
    CryptoCurrency.USDT_TRC20: "Tether (TRC-20)",
}

CURRENCY_DECIMALS = {
    CryptoCurrency.BITCOIN:    8,
    CryptoCurrency.USDT_TRC20: 2,
}

STATUS_LABELS = {
    TransactionStatus.PENDING:   "Pending",
    TransactionStatus.CONFIRMED: "Confirmed",
    TransactionStatus.FAILED:    "Failed",
}

DIRECTION_LABELS = {
    TransactionType.SEND:    "Sent",
    TransactionType.RECEIVE: "Received",
}


def _check_exhaustive(table: dict, enum_cls) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        raise RuntimeError(
            f"{enum_cls.__name__} table missing {sorted(m.value for m in missing)}")


for _table, _enum in ((CURRENCY_SYMBOLS, CryptoCurrency), (CURRENCY_NAMES, CryptoCurrency),
                      (CURRENCY_DECIMALS, CryptoCurrency), (STATUS_LABELS, TransactionStatus),
                      (DIRECTION_LABELS, TransactionType), (_ROLE_RANK, AdminRole)):
    _check_exhaustive(_table, _enum)


def format_amount(amount: Decimal, currency: CryptoCurrency) -> str:
    places = CURRENCY_DECIMALS[currency]
    return f"{amount:,.{places}f} {CURRENCY_SYMBOLS[currency]}"


def format_address(address: str, keep: int = 10) -> str:
    """Shorten long addresses to head...tail for display."""
    if len(address) <= keep * 2:
        return address
    return f"{address[:keep]}...{address[-keep:]}"


# ── Base ──────────────────────────────────────────────────────────────────────

class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys, None fields dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Wallets & Transactions ────────────────────────────────────────────────────

class Wallet(WireModel):
    id: int
    address: str
    currency: CryptoCurrency
    balance: Decimal = Field(default=Decimal("0"), ge=0)
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def symbol(self) -> str:
        return CURRENCY_SYMBOLS[self.currency]

    @property
    def currency_name(self) -> str:
        return CURRENCY_NAMES[self.currency]

    def balance_display(self) -> str:
        return format_amount(self.balance, self.currency)


class Transaction(WireModel):
    id: int
    tx_hash: str = Field(alias="txHash")
    from_address: str
    to_address: str
    amount: Decimal = Field(gt=0)
    fee: Optional[Decimal] = None
    direction: TransactionType = Field(alias="type")
    status: TransactionStatus
    block_number: Optional[int] = None
    confirmations: Optional[int] = None
    memo: Optional[str] = None
    created_at: datetime

    @property
    def is_final(self) -> bool:
        return self.status is not TransactionStatus.PENDING

    @property
    def status_label(self) -> str:
        return STATUS_LABELS[self.status]

    @property
    def direction_label(self) -> str:
        return DIRECTION_LABELS[self.direction]


# ── Identities ────────────────────────────────────────────────────────────────

class _Principal(WireModel):
    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or self.username


class User(_Principal):
    kind: Literal["user"] = "user"
    wallets: Optional[List[Wallet]] = None


class Admin(_Principal):
    kind: Literal["admin"] = "admin"
    role: AdminRole
    last_login: Optional[datetime] = None


Identity = Annotated[Union[User, Admin], Field(discriminator="kind")]

IDENTITY_MODELS = {
    IdentityKind.USER:  User,
    IdentityKind.ADMIN: Admin,
}


class AuthResponse(WireModel):
    message: str = ""
    user: Optional[User] = None
    admin: Optional[Admin] = None
    success: bool = False

    def identity_for(self, kind: IdentityKind) -> Optional[Union[User, Admin]]:
        return self.user if kind is IdentityKind.USER else self.admin


# ── Pagination ────────────────────────────────────────────────────────────────

T = TypeVar("T")


class Page(WireModel, Generic[T]):
    """One page of a server-side paginated listing (Spring Page layout)."""

    content: List[T] = Field(default_factory=list)
    total_elements: int = Field(default=0, ge=0)
    total_pages: int = Field(default=0, ge=0)
    size: int = Field(default=10, ge=0)
    number: int = Field(default=0, ge=0)
    first: bool = True
    last: bool = True

    @model_validator(mode="after")
    def _content_fits_page(self):
        if len(self.content) > self.size:
            raise ValueError(
                f"page holds {len(self.content)} items but size is {self.size}")
        return self

    @property
    def in_range(self) -> bool:
        return self.number < max(self.total_pages, 1)

    @classmethod
    def empty(cls, size: int = 10) -> "Page":
        return cls(content=[], total_elements=0, total_pages=0, size=size,
                   number=0, first=True, last=True)


# ── Admin statistics ──────────────────────────────────────────────────────────

class SystemStats(WireModel):
    total_users: int = 0
    active_users: int = 0
    total_wallets: int = 0
    bitcoin_wallets: int = 0
    usdt_wallets: int = 0
    total_transactions: int = 0
    pending_transactions: int = 0
    confirmed_transactions: int = 0
    failed_transactions: int = 0
    total_bitcoin_volume: Decimal = Decimal("0")
    total_usdt_volume: Decimal = Decimal("0")
    users_registered_today: int = 0
    transactions_today: int = 0
    last_updated: Optional[datetime] = None


# ── Request payloads ──────────────────────────────────────────────────────────

def _not_blank(v: str, label: str) -> str:
    if not v or not v.strip():
        raise ValueError(f"{label} is required")
    return v.strip()


def _valid_email(v: str) -> str:
    v = _not_blank(v, "Email")
    local, _, domain = v.partition("@")
    if not local or "." not in domain:
        raise ValueError("Email address is not valid")
    return v


class Credentials(WireModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def username_required(cls, v):
        return _not_blank(v, "Username")

    @field_validator("password")
    @classmethod
    def password_required(cls, v):
        if not v:
            raise ValueError("Password is required")
        return v


class UserRegistration(Credentials):
    email: str
    first_name: str
    last_name: str

    @field_validator("email")
    @classmethod
    def email_shape(cls, v):
        return _valid_email(v)

    @field_validator("first_name")
    @classmethod
    def first_name_required(cls, v):
        return _not_blank(v, "First name")

    @field_validator("last_name")
    @classmethod
    def last_name_required(cls, v):
        return _not_blank(v, "Last name")


class AdminRegistration(UserRegistration):
    role: AdminRole = AdminRole.ADMIN


class WalletCreation(WireModel):
    currency: CryptoCurrency


class SendTransactionRequest(WireModel):
    wallet_id: int
    to_address: str
    amount: Decimal = Field(gt=0)
    memo: Optional[str] = None

    @field_validator("to_address")
    @classmethod
    def address_required(cls, v):
        return _not_blank(v, "Recipient address")

    @field_validator("memo")
    @classmethod
    def blank_memo_is_none(cls, v):
        if v is None:
            return None
        return v.strip() or None


class AdminProfileUpdate(WireModel):
    email: str
    first_name: str
    last_name: str

    @field_validator("email")
    @classmethod
    def email_shape(cls, v):
        return _valid_email(v)


class ChangePasswordRequest(WireModel):
    current_password: str
    new_password: str

    @field_validator("current_password")
    @classmethod
    def current_required(cls, v):
        if not v:
            raise ValueError("Current password is required")
        return v

    @field_validator("new_password")
    @classmethod
    def new_password_length(cls, v):
        if not v:
            raise ValueError("New password is required")
        if not 8 <= len(v) <= 100:
            raise ValueError("New password must be between 8 and 100 characters")
        return v
