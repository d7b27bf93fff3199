"""
Account Session Manager

Single context object for everything account related. Built once at
startup and handed to whichever layer needs accounts; nothing here is a
process-wide global.

Usage:
    async with await AccountSessionManager.open(settings) as accounts:
        await accounts.offline_login("Steve")
        session = await accounts.get_credentials()
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Union
from uuid import UUID

import httpx

from launcher.core.accounts.identity import IdentityFactory
from launcher.core.accounts.manager import ActiveAccountManager
from launcher.core.accounts.models import (
    Credentials,
    OfflineCredentials,
    RemoteCredentials,
    utcnow,
)
from launcher.core.accounts.refresh import SessionRefresher, SessionState
from launcher.core.accounts.store import (
    CredentialStore,
    SqlOfflineCredentialStore,
    SqlRemoteCredentialStore,
)
from launcher.core.auth.remote_login import finish_login_flow, get_login_url
from launcher.core.config import Settings, get_settings
from launcher.core.database.connection import Database
from launcher.core.database.encryption import TokenCipher
from launcher.core.fetch import FetchClient

logger = logging.getLogger(__name__)

AccountId = Union[str, UUID]


class AccountSessionManager:
    """Offline identities and remote sessions behind one handle."""

    def __init__(
        self,
        settings: Settings,
        offline_store: CredentialStore[OfflineCredentials],
        remote_store: CredentialStore[RemoteCredentials],
        fetcher: FetchClient,
        db: Optional[Database] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.db = db
        self.clock = clock or utcnow

        self.identities = IdentityFactory(settings.offline_validity, clock=self.clock)
        self.offline = ActiveAccountManager(offline_store, namespace="offline")
        self.remote = ActiveAccountManager(remote_store, namespace="remote")
        self.refresher = SessionRefresher.from_settings(
            settings, remote_store, self.remote, fetcher, clock=self.clock
        )

    @classmethod
    async def open(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "AccountSessionManager":
        """
        Connect storage and networking from settings.

        Raises:
            StorageError: If the database cannot be opened
            ValueError: If a configured encryption key is invalid
        """
        settings = settings or get_settings()
        cipher = TokenCipher.from_settings(settings)
        db = await Database.connect(settings)
        fetcher = FetchClient.from_settings(settings, transport=transport)
        return cls(
            settings,
            SqlOfflineCredentialStore(db, cipher),
            SqlRemoteCredentialStore(db, cipher),
            fetcher,
            db=db,
        )

    async def close(self):
        await self.fetcher.aclose()
        if self.db is not None:
            await self.db.dispose()

    async def __aenter__(self) -> "AccountSessionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # =========================================================================
    # Offline identities
    # =========================================================================

    async def offline_login(self, name: str) -> OfflineCredentials:
        """Create (or re-create) the offline identity for a name and make it active."""
        credentials = self.identities.derive(name)
        await self.offline.store.upsert(credentials)
        logger.info(f"Offline login as '{name}' ({credentials.id})")
        return credentials

    async def offline_users(self) -> List[OfflineCredentials]:
        return await self.offline.users()

    async def get_default_offline_user(self) -> Optional[str]:
        return await self.offline.get_active_id()

    async def set_default_offline_user(self, account_id: AccountId) -> None:
        await self.offline.set_active(str(account_id))

    async def remove_offline_user(self, account_id: AccountId) -> None:
        await self.offline.remove(str(account_id))

    # =========================================================================
    # Remote sessions
    # =========================================================================

    def get_login_url(self) -> str:
        return get_login_url(self.settings)

    async def finish_login(self, code: str) -> RemoteCredentials:
        """
        Complete a sign-in and store the session as the active one.

        Raises:
            FetchError: If the user lookup fails
            ParseError: If the user lookup response is malformed
        """
        credentials = await finish_login_flow(
            code,
            self.fetcher,
            self.settings.modrinth_api_url,
            renewal_period=self.settings.renewal_period,
            clock=self.clock,
        )
        await self.remote.store.upsert(credentials)
        return credentials

    async def get_credentials(self) -> Optional[RemoteCredentials]:
        """Active remote session, renewed if close to expiry. None means logged out."""
        return await self.refresher.get_and_refresh()

    async def refresh_all(self) -> dict:
        """Renew every stored remote session; see SessionRefresher.refresh_all_known."""
        return await self.refresher.refresh_all_known()

    def session_state(self, credentials: RemoteCredentials) -> SessionState:
        return self.refresher.state_of(credentials)

    async def users(self) -> List[RemoteCredentials]:
        return await self.remote.users()

    async def get_default_user(self) -> Optional[str]:
        return await self.remote.get_active_id()

    async def set_default_user(self, account_id: str) -> None:
        await self.remote.set_active(account_id)

    async def remove_user(self, account_id: str) -> None:
        await self.remote.remove(account_id)

    # =========================================================================
    # Both namespaces
    # =========================================================================

    async def all_users(self) -> List[Credentials]:
        """Remote sessions followed by offline identities."""
        remote = await self.remote.users()
        offline = await self.offline.users()
        return [*remote, *offline]
