"""
Authentication flows for remote accounts.

Offline identities need no authentication; see launcher.core.accounts.identity.
"""

from .remote_login import get_login_url, fetch_info, finish_login_flow

__all__ = ['get_login_url', 'fetch_info', 'finish_login_flow']
