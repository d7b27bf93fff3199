"""
Remote Session Refresher

Renews remote sessions that are about to expire.

States of a session:
- VALID: expiry is further away than the guard window, returned untouched
- EXPIRING_SOON: inside the guard window, a renewal is attempted
- REFRESHING: renewal request in flight (at most one per account)
- REFRESHED: new token and expiry written to the stored record; the active
  flag and any concurrent removal are left as they are
- DISCARDED: renewal failed or returned an unreadable body; the account
  is removed and callers get no session

Failures are fail-closed: a network blip and a revoked session both end in
DISCARDED unless bounded retries are configured (session_refresh_attempts),
in which case transient failures are retried with exponential backoff first.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, Optional

from pydantic import ValidationError

from launcher.core.accounts.manager import ActiveAccountManager
from launcher.core.accounts.models import RemoteCredentials, SessionResponse, utcnow
from launcher.core.accounts.store import CredentialStore
from launcher.core.errors import AccountError, FetchError, ParseError
from launcher.core.fetch import FetchClient

logger = logging.getLogger(__name__)

DEFAULT_GUARD_WINDOW = timedelta(hours=1)
DEFAULT_RENEWAL_PERIOD = timedelta(weeks=2)


class SessionState(str, Enum):
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    REFRESHING = "refreshing"
    REFRESHED = "refreshed"
    DISCARDED = "discarded"


def parse_session_response(body: bytes) -> SessionResponse:
    """
    Raises:
        ParseError: If body is not JSON of the form {"session": "<token>"}
    """
    try:
        return SessionResponse.model_validate_json(body)
    except ValidationError as e:
        raise ParseError(f"Unexpected session refresh response ({e.error_count()} errors)") from e


class SessionRefresher:
    """
    Keeps remote sessions alive.

    Usage:
        refresher = SessionRefresher(store, manager, fetcher, api_url)
        creds = await refresher.get_and_refresh()   # None means logged out
        await refresher.refresh_all_known()
    """

    def __init__(
        self,
        store: CredentialStore[RemoteCredentials],
        manager: ActiveAccountManager[RemoteCredentials],
        fetcher: FetchClient,
        api_url: str,
        guard_window: timedelta = DEFAULT_GUARD_WINDOW,
        renewal_period: timedelta = DEFAULT_RENEWAL_PERIOD,
        max_attempts: int = 1,
        backoff: float = 2.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            store: Remote session store
            manager: Active-account policy used to discard failed sessions
            fetcher: Concurrency-limited HTTP client
            api_url: Base URL of the remote API
            guard_window: Refresh sessions expiring sooner than this
            renewal_period: Lifetime of a renewed session
            max_attempts: Attempts before discarding (transient failures only)
            backoff: Base delay in seconds between attempts
            clock: Returns the current aware UTC time
        """
        self.store = store
        self.manager = manager
        self.fetcher = fetcher
        self.api_url = api_url
        self.guard_window = guard_window
        self.renewal_period = renewal_period
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.clock = clock or utcnow
        self._in_flight: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_settings(cls, settings, store, manager, fetcher, clock=None) -> "SessionRefresher":
        return cls(
            store,
            manager,
            fetcher,
            api_url=settings.modrinth_api_url,
            guard_window=settings.guard_window,
            renewal_period=settings.renewal_period,
            max_attempts=settings.session_refresh_attempts,
            backoff=settings.session_refresh_backoff,
            clock=clock,
        )

    @property
    def refresh_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/session/refresh"

    def state_of(self, creds: RemoteCredentials, now: Optional[datetime] = None) -> SessionState:
        if creds.user_id in self._in_flight:
            return SessionState.REFRESHING
        now = now or self.clock()
        if creds.expires - now < self.guard_window:
            return SessionState.EXPIRING_SOON
        return SessionState.VALID

    async def get_and_refresh(self) -> Optional[RemoteCredentials]:
        """
        The active session, renewed first if it is about to expire.

        Returns:
            Usable credentials, or None when there is no active session or
            the active session had to be discarded

        Raises:
            StorageError: If the store fails
        """
        creds = await self.store.get_active()
        if creds is None:
            return None

        if self.state_of(creds) is SessionState.VALID:
            return creds

        logger.debug(f"Session for {creds.user_id} expires at {creds.expires.isoformat()}, refreshing")
        return await self.refresh(creds)

    async def refresh(self, creds: RemoteCredentials) -> Optional[RemoteCredentials]:
        """
        Renew a session regardless of its expiry.

        Concurrent calls for the same account share one renewal.
        """
        account_id = creds.user_id
        pending = self._in_flight.get(account_id)
        if pending is None:
            pending = asyncio.ensure_future(self._refresh(creds))
            self._in_flight[account_id] = pending

            def _done(task, account_id=account_id):
                if self._in_flight.get(account_id) is task:
                    del self._in_flight[account_id]

            pending.add_done_callback(_done)
        else:
            logger.debug(f"Joining in-flight refresh for {account_id}")

        return await asyncio.shield(pending)

    async def refresh_all_known(self) -> Dict[str, Optional[SessionState]]:
        """
        Force a renewal of every stored session, active or not.

        Each account is handled independently; failures are logged and
        never abort the batch.

        Returns:
            Account id -> REFRESHED or DISCARDED, or None where the store
            failed while handling that account
        """
        sessions = await self.store.get_all()
        if not sessions:
            return {}

        outcomes = await asyncio.gather(
            *(self._refresh_isolated(creds) for creds in sessions.values())
        )
        results = dict(zip(sessions.keys(), outcomes))
        refreshed = sum(1 for state in outcomes if state is SessionState.REFRESHED)
        logger.info(f"Refreshed {refreshed}/{len(results)} stored sessions")
        return results

    async def _refresh_isolated(self, creds: RemoteCredentials) -> Optional[SessionState]:
        try:
            refreshed = await self.refresh(creds)
        except AccountError as e:
            logger.error(f"Failed to refresh session for {creds.user_id}: {e}")
            return None
        return SessionState.REFRESHED if refreshed is not None else SessionState.DISCARDED

    async def _refresh(self, creds: RemoteCredentials) -> Optional[RemoteCredentials]:
        try:
            response = await self._request_renewal(creds)
        except (FetchError, ParseError) as e:
            logger.warning(f"Discarding session for {creds.user_id}: {e}")
            await self.manager.remove(creds.user_id)
            return None

        expires = self.clock() + self.renewal_period
        if not await self.store.update_token(creds.user_id, response.session, expires):
            logger.info(f"Session for {creds.user_id} was removed during refresh, renewed token dropped")
            return None

        refreshed = creds.with_token(response.session, expires)
        logger.info(f"Refreshed session for {creds.user_id} (expires {refreshed.expires.isoformat()})")
        return refreshed

    async def _request_renewal(self, creds: RemoteCredentials) -> SessionResponse:
        attempt = 0
        while True:
            attempt += 1
            try:
                body = await self.fetcher.fetch(
                    "POST",
                    self.refresh_url,
                    headers={"Authorization": creds.session},
                )
                return parse_session_response(body)
            except FetchError as e:
                if attempt >= self.max_attempts or not e.is_transient:
                    raise
                delay = (2 ** (attempt - 1)) * self.backoff
                logger.info(
                    f"Session refresh for {creds.user_id} failed on attempt {attempt}/{self.max_attempts}, "
                    f"retrying in {delay}s"
                )
                await asyncio.sleep(delay)
