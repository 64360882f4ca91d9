"""
CryptoWallet Development Server
================================
In-memory implementation of the wallet backend's REST contract, for running
and exercising the client without the real ledger service.

Usage:
    python devserver.py                  # http://127.0.0.1:8000/api
    CRYPTOWALLET_DEV_PORT=9000 python devserver.py

Nothing is persisted; balances move only through sends between wallets
held by this server. Seeded accounts:
    user  demo / demo-password   (BITCOIN wallet with 1.5 BTC)
    admin root / root-password   (SUPER_ADMIN)
"""

import logging
import math
import os
import secrets
import threading
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic.alias_generators import to_camel
import uvicorn

from core.models import (
    Admin, AdminProfileUpdate, AdminRegistration, AdminRole, ChangePasswordRequest,
    Credentials, CryptoCurrency, SendTransactionRequest, SystemStats, Transaction,
    TransactionStatus, TransactionType, User, UserRegistration, Wallet, WalletCreation,
    WireModel,
)
from core.security import PBKDF2_ITERATIONS, hash_password, verify_password

logger = logging.getLogger("cryptowallet.devserver")


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


def _dump(model: WireModel) -> dict:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"kind"})


def _new_address(currency: CryptoCurrency) -> str:
    if currency is CryptoCurrency.BITCOIN:
        return "bc1q" + secrets.token_hex(19)
    return "T" + secrets.token_hex(16)[:33]


# ── Store ─────────────────────────────────────────────────────────────────────

class DevStore:
    """All server state. Every public method takes the lock."""

    def __init__(self, hash_iterations: int = PBKDF2_ITERATIONS):
        self.lock            = threading.RLock()
        self.hash_iterations = hash_iterations
        self.users: Dict[int, User]               = {}
        self.admins: Dict[int, Admin]             = {}
        self.wallets: Dict[int, Wallet]           = {}
        self.transactions: Dict[int, Transaction] = {}
        self.passwords: Dict[Tuple[str, int], str] = {}
        self.wallet_owner: Dict[int, int] = {}
        self.tx_wallet: Dict[int, int]    = {}
        self._ids = {"user": 0, "admin": 0, "wallet": 0, "tx": 0}

    def _next_id(self, kind: str) -> int:
        self._ids[kind] += 1
        return self._ids[kind]

    # ── Accounts ──────────────────────────────────────────────────────────────

    def _check_unique(self, table: dict, username: str, email: str) -> None:
        for p in table.values():
            if p.username.lower() == username.lower():
                raise ValueError("Username already exists")
            if p.email.lower() == email.lower():
                raise ValueError("Email already exists")

    def register_user(self, reg: UserRegistration) -> User:
        with self.lock:
            self._check_unique(self.users, reg.username, reg.email)
            now  = _now()
            user = User(id=self._next_id("user"), username=reg.username, email=reg.email,
                        first_name=reg.first_name, last_name=reg.last_name, active=True,
                        created_at=now, updated_at=now)
            self.users[user.id] = user
            self.passwords[("user", user.id)] = hash_password(reg.password, self.hash_iterations)
            logger.info(f"Registered user {user.username!r} (id={user.id})")
            return self.user_view(user.id)

    def register_admin(self, reg: AdminRegistration) -> Admin:
        with self.lock:
            self._check_unique(self.admins, reg.username, reg.email)
            now   = _now()
            admin = Admin(id=self._next_id("admin"), username=reg.username, email=reg.email,
                          first_name=reg.first_name, last_name=reg.last_name, role=reg.role,
                          active=True, created_at=now, updated_at=now)
            self.admins[admin.id] = admin
            self.passwords[("admin", admin.id)] = hash_password(reg.password, self.hash_iterations)
            logger.info(f"Registered admin {admin.username!r} ({admin.role.value})")
            return admin

    def _authenticate(self, table: dict, kind: str, creds: Credentials):
        for p in table.values():
            if p.username == creds.username and p.active:
                if verify_password(creds.password, self.passwords[(kind, p.id)],
                                   self.hash_iterations):
                    return p
        return None

    def login_user(self, creds: Credentials) -> Optional[User]:
        with self.lock:
            user = self._authenticate(self.users, "user", creds)
            return self.user_view(user.id) if user else None

    def login_admin(self, creds: Credentials) -> Optional[Admin]:
        with self.lock:
            admin = self._authenticate(self.admins, "admin", creds)
            if admin is None:
                return None
            admin = admin.model_copy(update={"last_login": _now()})
            self.admins[admin.id] = admin
            return admin

    def update_admin(self, admin_id: int, profile: AdminProfileUpdate) -> Admin:
        with self.lock:
            admin = self.admins[admin_id]
            admin = admin.model_copy(update={
                "email": profile.email, "first_name": profile.first_name,
                "last_name": profile.last_name, "updated_at": _now(),
            })
            self.admins[admin_id] = admin
            return admin

    def change_admin_password(self, admin_id: int, req: ChangePasswordRequest) -> bool:
        with self.lock:
            key = ("admin", admin_id)
            if key not in self.passwords or not verify_password(
                    req.current_password, self.passwords[key], self.hash_iterations):
                return False
            self.passwords[key] = hash_password(req.new_password, self.hash_iterations)
            return True

    def user_view(self, user_id: int) -> User:
        user    = self.users[user_id]
        wallets = [w for wid, w in self.wallets.items() if self.wallet_owner[wid] == user_id]
        return user.model_copy(update={"wallets": wallets})

    # ── Wallets ───────────────────────────────────────────────────────────────

    def create_wallet(self, user_id: int, currency: CryptoCurrency,
                      balance: Decimal = Decimal("0")) -> Wallet:
        with self.lock:
            if user_id not in self.users:
                raise KeyError("User not found")
            now    = _now()
            wallet = Wallet(id=self._next_id("wallet"), address=_new_address(currency),
                            currency=currency, balance=balance, active=True,
                            created_at=now, updated_at=now)
            self.wallets[wallet.id]      = wallet
            self.wallet_owner[wallet.id] = user_id
            return wallet

    def user_wallets(self, user_id: int) -> List[Wallet]:
        with self.lock:
            return [w for wid, w in self.wallets.items() if self.wallet_owner[wid] == user_id]

    def refresh_balance(self, wallet_id: int) -> Wallet:
        """Confirms the wallet's pending transactions; balances are already booked."""
        with self.lock:
            wallet = self.wallets[wallet_id]
            for tx_id, wid in self.tx_wallet.items():
                tx = self.transactions[tx_id]
                if wid == wallet_id and tx.status is TransactionStatus.PENDING:
                    self.transactions[tx_id] = tx.model_copy(update={
                        "status": TransactionStatus.CONFIRMED, "confirmations": 6,
                        "block_number": 800_000 + tx_id,
                    })
            wallet = wallet.model_copy(update={"updated_at": _now()})
            self.wallets[wallet_id] = wallet
            return wallet

    def set_wallet_active(self, wallet_id: int, active: bool) -> Wallet:
        with self.lock:
            wallet = self.wallets[wallet_id].model_copy(
                update={"active": active, "updated_at": _now()})
            self.wallets[wallet_id] = wallet
            return wallet

    def toggle_user(self, user_id: int) -> User:
        with self.lock:
            user = self.users[user_id]
            self.users[user_id] = user.model_copy(
                update={"active": not user.active, "updated_at": _now()})
            return self.user_view(user_id)

    # ── Transactions ──────────────────────────────────────────────────────────

    def _record(self, wallet_id: int, **fields) -> Transaction:
        tx = Transaction(id=self._next_id("tx"), created_at=_now(), **fields)
        self.transactions[tx.id] = tx
        self.tx_wallet[tx.id]    = wallet_id
        return tx

    def send(self, req: SendTransactionRequest) -> Transaction:
        with self.lock:
            wallet = self.wallets.get(req.wallet_id)
            if wallet is None:
                raise KeyError("Wallet not found")
            if not wallet.active:
                raise ValueError("Wallet is inactive")
            if wallet.balance < req.amount:
                raise ValueError("Insufficient balance")

            tx_hash = secrets.token_hex(32)
            self.wallets[wallet.id] = wallet.model_copy(
                update={"balance": wallet.balance - req.amount, "updated_at": _now()})
            sent = self._record(wallet.id, tx_hash=tx_hash, from_address=wallet.address,
                                to_address=req.to_address, amount=req.amount,
                                direction=TransactionType.SEND,
                                status=TransactionStatus.PENDING, memo=req.memo)

            for target in list(self.wallets.values()):
                if target.address == req.to_address and target.currency is wallet.currency:
                    self.wallets[target.id] = target.model_copy(
                        update={"balance": target.balance + req.amount, "updated_at": _now()})
                    self._record(target.id, tx_hash=tx_hash + ":in",
                                 from_address=wallet.address, to_address=target.address,
                                 amount=req.amount, direction=TransactionType.RECEIVE,
                                 status=TransactionStatus.PENDING, memo=req.memo)
                    break
            return sent

    def wallet_transactions(self, wallet_id: int) -> List[Transaction]:
        with self.lock:
            txs = [self.transactions[t] for t, w in self.tx_wallet.items() if w == wallet_id]
        return sorted(txs, key=lambda t: (t.created_at, t.id), reverse=True)

    def user_transactions(self, user_id: int) -> List[Transaction]:
        with self.lock:
            txs = [self.transactions[t] for t, w in self.tx_wallet.items()
                   if self.wallet_owner[w] == user_id]
        return sorted(txs, key=lambda t: (t.created_at, t.id), reverse=True)

    def toggle_transaction(self, tx_id: int) -> Transaction:
        """Admin override: PENDING/FAILED -> CONFIRMED, CONFIRMED -> FAILED."""
        with self.lock:
            tx     = self.transactions[tx_id]
            status = (TransactionStatus.FAILED if tx.status is TransactionStatus.CONFIRMED
                      else TransactionStatus.CONFIRMED)
            self.transactions[tx_id] = tx.model_copy(update={"status": status})
            return self.transactions[tx_id]

    # ── Stats ─────────────────────────────────────────────────────────────────

    def stats(self) -> SystemStats:
        with self.lock:
            today = _now().replace(hour=0, minute=0, second=0)
            txs   = list(self.transactions.values())
            sends = [t for t in txs if t.direction is TransactionType.SEND]

            def volume(currency):
                return sum((t.amount for t in sends
                            if t.status is TransactionStatus.CONFIRMED
                            and self.wallets[self.tx_wallet[t.id]].currency is currency),
                           Decimal("0"))

            def count(status):
                return sum(1 for t in txs if t.status is status)

            return SystemStats(
                total_users=len(self.users),
                active_users=sum(1 for u in self.users.values() if u.active),
                total_wallets=len(self.wallets),
                bitcoin_wallets=sum(1 for w in self.wallets.values()
                                    if w.currency is CryptoCurrency.BITCOIN),
                usdt_wallets=sum(1 for w in self.wallets.values()
                                 if w.currency is CryptoCurrency.USDT_TRC20),
                total_transactions=len(txs),
                pending_transactions=count(TransactionStatus.PENDING),
                confirmed_transactions=count(TransactionStatus.CONFIRMED),
                failed_transactions=count(TransactionStatus.FAILED),
                total_bitcoin_volume=volume(CryptoCurrency.BITCOIN),
                total_usdt_volume=volume(CryptoCurrency.USDT_TRC20),
                users_registered_today=sum(1 for u in self.users.values()
                                           if u.created_at and u.created_at >= today),
                transactions_today=sum(1 for t in txs if t.created_at >= today),
                last_updated=_now(),
            )

    # ── Listing ───────────────────────────────────────────────────────────────

    def search_text(self, resource: str, item) -> str:
        if resource == "users":
            fields = (item.username, item.email, item.first_name, item.last_name)
        elif resource == "wallets":
            owner  = self.users[self.wallet_owner[item.id]]
            fields = (item.address, owner.username)
        else:
            fields = (item.tx_hash, item.from_address, item.to_address, item.memo)
        return " ".join(f for f in fields if f).lower()

    def rows(self, resource: str) -> list:
        with self.lock:
            if resource == "users":
                return [self.user_view(uid) for uid in self.users]
            if resource == "wallets":
                return list(self.wallets.values())
            return list(self.transactions.values())


# ── Pagination (Spring Page layout) ───────────────────────────────────────────

def _sort_key(model_cls, sort_by: str):
    name = next((n for n, f in model_cls.model_fields.items()
                 if sort_by in (n, f.alias, to_camel(n))), None)
    if name is None:
        raise HTTPException(400, f"Cannot sort by {sort_by}")

    def key(item):
        value = getattr(item, name)
        if hasattr(value, "value"):
            value = value.value
        return (value is None, value if value is not None else 0)
    return key


def paginate(items: list, model_cls, page: int, size: int, sort_by: str, sort_dir: str) -> dict:
    if size <= 0 or page < 0:
        raise HTTPException(400, "page must be >= 0 and size > 0")
    items       = sorted(items, key=_sort_key(model_cls, sort_by),
                         reverse=sort_dir.lower() == "desc")
    total       = len(items)
    total_pages = math.ceil(total / size)
    chunk       = items[page * size:(page + 1) * size]
    return {
        "content":          [_dump(i) for i in chunk],
        "totalElements":    total,
        "totalPages":       total_pages,
        "size":             size,
        "number":           page,
        "first":            page == 0,
        "last":             page + 1 >= total_pages,
        "numberOfElements": len(chunk),
        "empty":            not chunk,
    }


# =============================================================================
# FASTAPI APP
# =============================================================================

def _auth_response(message: str, status: int = 200, **identity) -> JSONResponse:
    body = {"message": message, "user": None, "admin": None, "success": bool(identity)}
    for key, value in identity.items():
        body[key] = _dump(value)
    return JSONResponse(status_code=status, content=body)


def _resource_model(resource: str):
    models = {"users": User, "wallets": Wallet, "transactions": Transaction}
    if resource not in models:
        raise HTTPException(404, f"Unknown resource {resource}")
    return models[resource]


def create_app(store: Optional[DevStore] = None, seed: bool = True) -> FastAPI:
    store = store or DevStore()
    if seed:
        seed_demo_data(store)

    app = FastAPI(title="CryptoWallet Dev API", version="1.0.0",
                  description="In-memory wallet backend for client development")
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api = APIRouter(prefix="/api")

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        msg   = str(first.get("msg", "Invalid request"))
        return JSONResponse(status_code=400,
                            content={"message": msg.replace("Value error, ", ""),
                                     "success": False})

    @app.exception_handler(KeyError)
    async def not_found_handler(request: Request, exc: KeyError):
        return JSONResponse(status_code=404, content={"message": "Not found"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.url}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"message": "Internal server error. Check server logs."}
        )

    # ── Auth ──────────────────────────────────────────────────────────────────

    @api.post("/users/register")
    def register_user(req: UserRegistration):
        try:
            user = store.register_user(req)
        except ValueError as e:
            return _auth_response(str(e), status=400)
        return _auth_response("User registered successfully", status=201, user=user)

    @api.post("/users/login")
    def login_user(req: Credentials):
        user = store.login_user(req)
        if user is None:
            return _auth_response("Invalid username or password", status=401)
        return _auth_response("Login successful", user=user)

    @api.post("/admin/register")
    def register_admin(req: AdminRegistration):
        try:
            admin = store.register_admin(req)
        except ValueError as e:
            return _auth_response(str(e), status=400)
        return _auth_response("Admin registered successfully", status=201, admin=admin)

    @api.post("/admin/login")
    def login_admin(req: Credentials):
        admin = store.login_admin(req)
        if admin is None:
            return _auth_response("Invalid username or password", status=401)
        return _auth_response("Login successful", admin=admin)

    # ── Admin dashboard ───────────────────────────────────────────────────────
    # registered before /admin/{admin_id} so "dashboard" is never taken for an id

    @api.get("/admin/dashboard/stats")
    def stats():
        return _dump(store.stats())

    @api.get("/admin/dashboard/{resource}/search")
    def search(resource: str, query: str, page: int = 0, size: int = 10,
               sortBy: str = "createdAt", sortDir: str = "desc"):
        model  = _resource_model(resource)
        needle = query.strip().lower()
        rows   = [r for r in store.rows(resource) if needle in store.search_text(resource, r)]
        return paginate(rows, model, page, size, sortBy, sortDir)

    @api.get("/admin/dashboard/{resource}")
    def list_resource(resource: str, page: int = 0, size: int = 10,
                      sortBy: str = "createdAt", sortDir: str = "desc",
                      active: Optional[bool] = None,
                      currency: Optional[CryptoCurrency] = None,
                      status: Optional[TransactionStatus] = None,
                      type: Optional[TransactionType] = Query(default=None)):
        model = _resource_model(resource)
        rows  = store.rows(resource)
        if active is not None and resource in ("users", "wallets"):
            rows = [r for r in rows if r.active is active]
        if currency is not None and resource == "wallets":
            rows = [r for r in rows if r.currency is currency]
        if status is not None and resource == "transactions":
            rows = [r for r in rows if r.status is status]
        if type is not None and resource == "transactions":
            rows = [r for r in rows if r.direction is type]
        return paginate(rows, model, page, size, sortBy, sortDir)

    @api.put("/admin/dashboard/{resource}/{item_id}/toggle-status")
    def toggle_status(resource: str, item_id: int):
        _resource_model(resource)
        if resource == "users":
            return _dump(store.toggle_user(item_id))
        if resource == "wallets":
            wallet = store.wallets[item_id]
            store.set_wallet_active(item_id, not wallet.active)
            return None
        return _dump(store.toggle_transaction(item_id))

    @api.post("/admin/dashboard/wallets/{wallet_id}/refresh-balance", status_code=204)
    def admin_refresh_balance(wallet_id: int):
        store.refresh_balance(wallet_id)
        return None

    # ── Admin account ─────────────────────────────────────────────────────────

    @api.put("/admin/{admin_id}")
    def update_admin(admin_id: int, req: AdminProfileUpdate):
        return _dump(store.update_admin(admin_id, req))

    @api.post("/admin/{admin_id}/change-password")
    def change_password(admin_id: int, req: ChangePasswordRequest):
        if not store.change_admin_password(admin_id, req):
            return PlainTextResponse("Invalid current password", status_code=400)
        return PlainTextResponse("Password changed successfully")

    # ── Wallets ───────────────────────────────────────────────────────────────

    @api.post("/wallets/user/{user_id}", status_code=201)
    def create_wallet(user_id: int, req: WalletCreation):
        return _dump(store.create_wallet(user_id, req.currency))

    @api.get("/wallets/user/{user_id}")
    def user_wallets(user_id: int):
        return [_dump(w) for w in store.user_wallets(user_id)]

    @api.post("/wallets/{wallet_id}/refresh-balance", status_code=204)
    def refresh_balance(wallet_id: int):
        store.refresh_balance(wallet_id)
        return None

    @api.delete("/wallets/{wallet_id}", status_code=204)
    def deactivate_wallet(wallet_id: int):
        store.set_wallet_active(wallet_id, False)

    # ── Transactions ──────────────────────────────────────────────────────────

    @api.post("/transactions/send")
    def send(req: SendTransactionRequest):
        try:
            tx = store.send(req)
        except ValueError as e:
            return JSONResponse(status_code=400, content={"message": str(e)})
        return _dump(tx)

    @api.get("/transactions/wallet/{wallet_id}")
    def wallet_transactions(wallet_id: int):
        return [_dump(t) for t in store.wallet_transactions(wallet_id)]

    @api.get("/transactions/user/{user_id}")
    def user_transactions(user_id: int):
        return [_dump(t) for t in store.user_transactions(user_id)]

    app.include_router(api)
    return app


def seed_demo_data(store: DevStore) -> None:
    demo = store.register_user(UserRegistration(
        username="demo", password="demo-password", email="demo@example.com",
        first_name="Demo", last_name="User"))
    store.create_wallet(demo.id, CryptoCurrency.BITCOIN, balance=Decimal("1.5"))
    store.register_admin(AdminRegistration(
        username="root", password="root-password", email="root@example.com",
        first_name="Root", last_name="Admin", role=AdminRole.SUPER_ADMIN))
    logger.info("Seeded demo user: demo / demo-password")
    logger.info("Seeded admin: root / root-password")


# =============================================================================
# ENTRY POINT
# =============================================================================

def run() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s"
    )
    host = os.environ.get("CRYPTOWALLET_DEV_HOST", "127.0.0.1")
    port = int(os.environ.get("CRYPTOWALLET_DEV_PORT", "8000"))
    print(f"\n  CryptoWallet dev server - http://{host}:{port}/api")
    print(f"  Docs: http://{host}:{port}/docs\n")
    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    run()
