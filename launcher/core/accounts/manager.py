"""
Active Account Manager

Keeps one credential per namespace active across explicit switches and
removals. When the active account is removed, any one remaining account is
promoted; which one is deliberately unspecified.
"""
import logging
from typing import Generic, List, Optional

from launcher.core.accounts.store import C, CredentialStore
from launcher.core.errors import NotFound

logger = logging.getLogger(__name__)


class ActiveAccountManager(Generic[C]):
    """
    Active-account policy for one namespace.

    Usage:
        manager = ActiveAccountManager(store, namespace="offline")
        await manager.set_active(account_id)
        await manager.remove(account_id)
    """

    def __init__(self, store: CredentialStore[C], namespace: str = "accounts"):
        self.store = store
        self.namespace = namespace

    async def get_active_id(self) -> Optional[str]:
        active = await self.store.get_active()
        return active.id if active else None

    async def users(self) -> List[C]:
        """Copy of every stored credential."""
        return list((await self.store.get_all()).values())

    async def set_active(self, account_id: str) -> None:
        """
        Make an account the active one.

        Raises:
            NotFound: If no account with this id is stored
        """
        if not await self.store.activate(account_id):
            raise NotFound(account_id)
        logger.info(f"Switched active {self.namespace} account to {account_id}")

    async def remove(self, account_id: str) -> None:
        """
        Delete an account. Unknown ids are ignored.

        If the removed account was active and nothing else has become active
        since, some remaining account becomes active; with none left the
        namespace has no active account. Only active flags are written.
        """
        users = await self.store.get_all()
        user = users.pop(account_id, None)
        if user is None:
            logger.debug(f"Remove of unknown {self.namespace} account {account_id} ignored")
            return

        await self.store.remove(account_id)
        logger.info(f"Removed {self.namespace} account {account_id}")

        if not user.active or await self.store.get_active() is not None:
            return

        # Candidates may be removed concurrently; take the first still stored
        for candidate_id in users:
            if await self.store.activate(candidate_id):
                logger.info(f"Promoted {self.namespace} account {candidate_id} to active")
                return
