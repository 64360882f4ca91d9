"""
User dashboard: which view is active and how wallets hand off to sends.
"""

import logging
from enum import Enum

from core.models import Transaction, User, Wallet
from core.transactions import TransactionWorkflow
from core.wallets import WalletWorkflow

logger = logging.getLogger("cryptowallet.dashboard")


class ActiveView(str, Enum):
    WALLETS = "wallets"
    SEND    = "send"
    HISTORY = "history"


class UserDashboard:

    def __init__(self, api, user: User):
        self.user         = user
        self.active_view  = ActiveView.WALLETS
        self.wallets      = WalletWorkflow(api, user, on_select=self._on_wallet_selected)
        self.transactions = TransactionWorkflow(api, on_sent=self._on_transaction_sent)

    async def activate(self) -> bool:
        return await self.wallets.load()

    def _on_wallet_selected(self, wallet: Wallet) -> None:
        self.transactions.begin(wallet)
        self.active_view = ActiveView.SEND

    def _on_transaction_sent(self, tx: Transaction) -> None:
        self.wallets.clear_selection()
        self.active_view = ActiveView.WALLETS

    def show_wallets(self) -> None:
        self.active_view = ActiveView.WALLETS

    async def show_history(self) -> bool:
        """History of the selected wallet, or of every wallet the user owns."""
        self.active_view = ActiveView.HISTORY
        selected = self.wallets.selected
        if selected is not None:
            return await self.transactions.load_history(wallet_id=selected.id)
        return await self.transactions.load_history(user_id=self.user.id)
