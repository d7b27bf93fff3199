"""
Account error taxonomy.

NotFound and StorageError are surfaced to callers. FetchError and ParseError
are surfaced from login, but the session refresh path converts them into a
discard of the credential.
"""
from typing import Optional


class AccountError(Exception):
    """Base class for account and session errors."""
    pass


class NotFound(AccountError):
    """Operation referenced an account id that is not stored."""

    def __init__(self, account_id: str):
        super().__init__(f"Tried to get nonexistent user with ID {account_id}")
        self.account_id = account_id


class StorageError(AccountError):
    """Persistence layer failed (I/O, transaction failure, corruption)."""
    pass


class FetchError(AccountError):
    """Network or transport failure talking to the remote service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """
        True when a retry could plausibly succeed.

        Timeouts and connection errors carry no status code; 5xx and 429
        are server-side conditions. Any other status (401/403 in particular)
        means the session itself was rejected.
        """
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code == 429


class ParseError(AccountError):
    """Remote response did not match the expected shape."""
    pass
