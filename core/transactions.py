"""
CryptoWallet Transaction Workflow
==================================
Compose, check and submit a send from one wallet; fetch history.

The balance check here is advisory: submission is enabled only when
0 < amount <= wallet.balance, but the server re-checks and may still reject
the send. That rejection is an ordinary failure.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Union

from pydantic import ValidationError

from api_client import ApiError
from core.auth import validation_message
from core.models import SendTransactionRequest, Transaction, Wallet

logger = logging.getLogger("cryptowallet.transactions")

AmountInput = Union[str, int, float, Decimal, None]


def parse_amount(value: AmountInput) -> Optional[Decimal]:
    """Decimal for a finite numeric input, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    return amount if amount.is_finite() else None


@dataclass
class Draft:
    to_address: str = ""
    amount: Optional[Decimal] = None
    memo: str = ""


class TransactionWorkflow:

    def __init__(self, api, on_sent: Optional[Callable[[Transaction], None]] = None):
        self.api      = api
        self.on_sent  = on_sent
        self.wallet: Optional[Wallet] = None
        self.draft    = Draft()
        self.submitting   = False
        self.error: Optional[str] = None
        self.confirmation: Optional[str] = None
        self.history: List[Transaction] = []
        self.history_loading = False
        self.history_error: Optional[str] = None
        self._history_generation = 0

    # ── Draft ─────────────────────────────────────────────────────────────────

    def begin(self, wallet: Wallet) -> None:
        """Start a fresh draft scoped to `wallet`."""
        self.wallet = wallet
        self.draft  = Draft()
        self.error  = None
        self.confirmation = None

    def update_draft(self, to_address: Optional[str] = None, amount: AmountInput = None,
                     memo: Optional[str] = None) -> None:
        if to_address is not None:
            self.draft.to_address = to_address
        if amount is not None:
            self.draft.amount = parse_amount(amount)
        if memo is not None:
            self.draft.memo = memo

    def blocking_reason(self) -> Optional[str]:
        """Why the draft cannot be submitted, or None when it can."""
        if self.wallet is None:
            return "Select a wallet first"
        if self.submitting:
            return "Transaction is being sent"
        if not self.draft.to_address.strip():
            return "Recipient address is required"
        amount = self.draft.amount
        if amount is None or amount <= 0:
            return "Amount must be greater than 0"
        if amount > self.wallet.balance:
            return "Amount exceeds wallet balance"
        return None

    @property
    def can_submit(self) -> bool:
        return self.blocking_reason() is None

    # ── Submit ────────────────────────────────────────────────────────────────

    async def submit(self) -> Optional[Transaction]:
        reason = self.blocking_reason()
        if reason is not None:
            self.error = reason
            return None
        try:
            request = SendTransactionRequest(
                wallet_id=self.wallet.id,
                to_address=self.draft.to_address,
                amount=self.draft.amount,
                memo=self.draft.memo or None,
            )
        except ValidationError as e:
            self.error = validation_message(e)
            return None

        self.submitting   = True
        self.error        = None
        self.confirmation = None
        try:
            tx = await self.api.send_transaction(request)
        except ApiError as e:
            self.error = str(e) or "Transaction failed"
            logger.warning(f"Send from wallet {request.wallet_id} rejected: {self.error}")
            return None
        finally:
            self.submitting = False

        logger.info(f"Sent {request.amount} from wallet {request.wallet_id}: {tx.tx_hash}")
        self.draft        = Draft()
        self.confirmation = f"Transaction sent successfully! TX Hash: {tx.tx_hash}"
        if self.on_sent is not None:
            self.on_sent(tx)
        return tx

    # ── History ───────────────────────────────────────────────────────────────

    async def load_history(self, wallet_id: Optional[int] = None,
                           user_id: Optional[int] = None) -> bool:
        """History for exactly one wallet or one user, newest first."""
        if (wallet_id is None) == (user_id is None):
            raise ValueError("load_history needs exactly one of wallet_id or user_id")

        self._history_generation += 1
        generation = self._history_generation
        self.history_loading = True
        try:
            if wallet_id is not None:
                txs = await self.api.get_wallet_transactions(wallet_id)
            else:
                txs = await self.api.get_user_transactions(user_id)
        except ApiError as e:
            if generation != self._history_generation:
                return False
            self.history_loading = False
            self.history_error   = f"Failed to load transactions: {e}"
            logger.error(self.history_error)
            return False

        if generation != self._history_generation:
            logger.debug(f"Dropping stale transaction history (gen {generation})")
            return False
        self.history_loading = False
        self.history         = sorted(txs, key=lambda t: t.created_at, reverse=True)
        self.history_error   = None
        return True
