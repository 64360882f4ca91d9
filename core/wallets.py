"""
CryptoWallet Wallet Workflow
=============================
The logged-in user's wallet list: create, refresh balance, deactivate and
select-for-send. Every mutation is followed by a full reload of the list;
there is no optimistic insert or patch.
"""

import logging
from typing import Callable, List, Optional

from api_client import ApiError
from core.models import CryptoCurrency, User, Wallet

logger = logging.getLogger("cryptowallet.wallets")


class WalletWorkflow:

    def __init__(self, api, user: User, on_select: Optional[Callable[[Wallet], None]] = None):
        self.api       = api
        self.user      = user
        self.on_select = on_select
        self.wallets: List[Wallet] = []
        self.selected: Optional[Wallet] = None
        self.loading   = False
        self.creating  = False
        self.error: Optional[str] = None
        self._generation = 0

    async def load(self) -> bool:
        """Fetch the user's wallets. False on failure or when a newer load overtook this one."""
        self._generation += 1
        generation = self._generation
        self.loading = True
        try:
            wallets = await self.api.get_user_wallets(self.user.id)
        except ApiError as e:
            if generation != self._generation:
                return False
            self.loading = False
            self.error   = f"Failed to load wallets: {e}"
            logger.error(self.error)
            return False

        if generation != self._generation:
            logger.debug(f"Dropping stale wallet list (gen {generation})")
            return False
        self.loading = False
        self.wallets = wallets
        self.error   = None
        return True

    async def create(self, currency: CryptoCurrency) -> Optional[Wallet]:
        """Ask the server for a new wallet, then reload the list."""
        currency = CryptoCurrency(currency)
        self.creating = True
        try:
            wallet = await self.api.create_wallet(self.user.id, currency)
        except ApiError as e:
            self.error = f"Failed to create wallet: {e}"
            logger.error(self.error)
            return None
        finally:
            self.creating = False
        logger.info(f"Created {currency.value} wallet {wallet.id} for user {self.user.id}")
        await self.load()
        return wallet

    async def refresh_balance(self, wallet_id: int) -> bool:
        try:
            await self.api.refresh_wallet_balance(wallet_id)
        except ApiError as e:
            self.error = f"Failed to refresh balance: {e}"
            logger.error(self.error)
            return False
        return await self.load()

    async def deactivate(self, wallet_id: int) -> bool:
        try:
            await self.api.deactivate_wallet(wallet_id)
        except ApiError as e:
            self.error = f"Failed to deactivate wallet: {e}"
            logger.error(self.error)
            return False
        if self.selected is not None and self.selected.id == wallet_id:
            self.selected = None
        return await self.load()

    def select(self, wallet: Wallet) -> None:
        """Hand `wallet` to the send flow. No remote call."""
        self.selected = wallet
        if self.on_select is not None:
            self.on_select(wallet)

    def clear_selection(self) -> None:
        self.selected = None

    @property
    def active_wallets(self) -> List[Wallet]:
        return [w for w in self.wallets if w.active]

    def missing_currencies(self) -> List[CryptoCurrency]:
        """Currencies the user has no active wallet for yet."""
        held = {w.currency for w in self.active_wallets}
        return [c for c in CryptoCurrency if c not in held]
