"""
Offline identity derivation.

The identity id is a UUID v5 (SHA-1) of the name under the DNS namespace, so
the same name always maps to the same account and no network is needed.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from launcher.core.accounts.models import (
    OFFLINE_TOKEN,
    OfflineCredentials,
    OfflineProfile,
    utcnow,
)

logger = logging.getLogger(__name__)

OFFLINE_NAMESPACE = uuid.NAMESPACE_DNS
DEFAULT_OFFLINE_VALIDITY = timedelta(days=3650)


def offline_uuid(name: str) -> uuid.UUID:
    return uuid.uuid5(OFFLINE_NAMESPACE, name)


class IdentityFactory:
    """Builds offline credentials. Persistence is left to the caller."""

    def __init__(
        self,
        validity: timedelta = DEFAULT_OFFLINE_VALIDITY,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.validity = validity
        self.clock = clock or utcnow

    def derive(self, name: str) -> OfflineCredentials:
        """
        Derive the offline identity for a name.

        Args:
            name: Display name chosen by the user

        Returns:
            Active OfflineCredentials with placeholder tokens and a far-future expiry

        Raises:
            ValueError: If name is empty
        """
        if not name:
            raise ValueError("Username required")

        profile = OfflineProfile(id=offline_uuid(name), name=name)
        logger.debug(f"Derived offline identity {profile.id} for '{name}'")

        return OfflineCredentials(
            profile=profile,
            access_token=OFFLINE_TOKEN,
            refresh_token=OFFLINE_TOKEN,
            expires=self.clock() + self.validity,
            active=True,
        )
