"""
Accounts Module

Offline identities and remote sessions: persistence, the single-active
account policy and session renewal.
"""
from .models import (
    Credentials,
    OfflineCredentials,
    OfflineProfile,
    RemoteCredentials,
    RemoteProfile,
)
from .identity import IdentityFactory, offline_uuid
from .store import (
    CredentialStore,
    InMemoryCredentialStore,
    SqlOfflineCredentialStore,
    SqlRemoteCredentialStore,
)
from .manager import ActiveAccountManager
from .refresh import SessionRefresher, SessionState

__all__ = [
    'Credentials',
    'OfflineCredentials',
    'OfflineProfile',
    'RemoteCredentials',
    'RemoteProfile',
    'IdentityFactory',
    'offline_uuid',
    'CredentialStore',
    'InMemoryCredentialStore',
    'SqlOfflineCredentialStore',
    'SqlRemoteCredentialStore',
    'ActiveAccountManager',
    'SessionRefresher',
    'SessionState',
]
