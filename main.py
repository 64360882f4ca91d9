"""
CryptoWallet Client - Application Entry Point
==============================================
Wires configuration, the REST client, the session store and the
controllers together.

  python main.py            # user mode: restore session, check server
  python main.py --admin    # same, in admin mode

Start-up restores the persisted identity for the chosen mode and probes
the server. Logout tears down every controller and clears both sessions.
"""

import asyncio
import logging
import sys
from typing import Optional, Union

from api_client import ApiClient
from config import CONFIG
from core.admin import AdminConsole
from core.auth import AuthGateway, AuthResult
from core.dashboard import UserDashboard
from core.models import Admin, IdentityKind, User
from core.session import FileStorage, SessionStore

logger = logging.getLogger("cryptowallet")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s"
    )


class WalletApp:
    """Composition root: one per running client."""

    def __init__(self, cfg: Optional[dict] = None, api=None, storage=None):
        self.config    = cfg or CONFIG
        self.api       = api or ApiClient(self.config["api_base_url"],
                                          self.config.get("timeout"),
                                          self.config.get("verify_ssl"))
        self.sessions  = SessionStore(storage if storage is not None
                                      else FileStorage(self.config["session_dir"]))
        self.auth      = AuthGateway(self.api, self.sessions)
        self.dashboard: Optional[UserDashboard] = None
        self.console: Optional[AdminConsole]    = None

    @property
    def identity(self) -> Optional[Union[User, Admin]]:
        return self.auth.current

    @property
    def mode(self) -> IdentityKind:
        return self.auth.mode

    def start(self, mode: IdentityKind = IdentityKind.USER) -> Optional[Union[User, Admin]]:
        """Restore the persisted session for `mode`, if there is one."""
        identity = self.auth.restore(mode)
        if identity is not None:
            logger.info(f"Restored {identity.kind} session for {identity.username!r}")
            self._enter(identity)
        return identity

    def switch_mode(self, mode: IdentityKind) -> None:
        self.auth.switch_mode(mode)
        if self.auth.current is None:
            self._leave()

    async def login(self, credentials) -> AuthResult:
        result = await self.auth.login(credentials)
        if result.ok:
            self._enter(result.identity)
        return result

    async def register(self, registration) -> AuthResult:
        result = await self.auth.register(registration)
        if result.ok:
            self._enter(result.identity)
        return result

    async def activate(self) -> bool:
        """Initial fetch for whichever side is active."""
        if self.dashboard is not None:
            return await self.dashboard.activate()
        if self.console is not None:
            return await self.console.activate()
        return False

    def logout(self) -> None:
        self.auth.logout()
        self._leave()

    async def check_server(self) -> bool:
        ok = await self.api.ping()
        if ok:
            logger.info(f"Server reachable at {self.api.base_url}")
        else:
            logger.warning(f"Cannot reach server at {self.api.base_url}. "
                           f"Check api_base_url in the config.")
        return ok

    def _enter(self, identity: Union[User, Admin]) -> None:
        self._leave()
        if isinstance(identity, Admin):
            self.console = AdminConsole(self.api, self.auth,
                                        page_size=self.config.get("page_size", 10))
        else:
            self.dashboard = UserDashboard(self.api, identity)

    def _leave(self) -> None:
        self.dashboard = None
        self.console   = None


async def _startup(mode: IdentityKind) -> int:
    app = WalletApp()
    logger.info(f"{app.config['app_name']} {app.config['app_version']} "
                f"- server {app.api.base_url}")
    reachable = await app.check_server()
    identity  = app.start(mode)
    if identity is None:
        logger.info(f"No saved {mode.value} session; sign in required.")
    elif reachable:
        await app.activate()
    return 0 if reachable else 1


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    setup_logging(CONFIG.get("log_level", "INFO"))
    mode = IdentityKind.ADMIN if "--admin" in argv else IdentityKind.USER
    return asyncio.run(_startup(mode))


if __name__ == "__main__":
    sys.exit(main())
