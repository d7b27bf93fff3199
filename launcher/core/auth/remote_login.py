"""
Remote service login

The sign-in page hands back a code that already is the session token (an
implicit grant), so finishing the login only needs the user lookup:

    url = get_login_url(settings)
    # ... user signs in, app receives `code` ...
    creds = await finish_login_flow(code, fetcher, settings.modrinth_api_url)
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import ValidationError

from launcher.core.accounts.models import RemoteCredentials, RemoteProfile, utcnow
from launcher.core.errors import ParseError
from launcher.core.fetch import FetchClient

logger = logging.getLogger(__name__)


def get_login_url(settings) -> str:
    return f"{settings.modrinth_url.rstrip('/')}/auth/sign-in"


async def fetch_info(token: str, fetcher: FetchClient, api_url: str) -> RemoteProfile:
    """
    Look up the remote user a token belongs to.

    Raises:
        FetchError: If the request fails
        ParseError: If the response is not a user profile
    """
    body = await fetcher.fetch(
        "GET",
        f"{api_url.rstrip('/')}/user",
        headers={"Authorization": token},
    )
    try:
        return RemoteProfile.model_validate_json(body)
    except ValidationError as e:
        raise ParseError(f"Unexpected user response ({e.error_count()} errors)") from e


async def finish_login_flow(
    code: str,
    fetcher: FetchClient,
    api_url: str,
    renewal_period: timedelta = timedelta(weeks=2),
    clock: Optional[Callable[[], datetime]] = None,
) -> RemoteCredentials:
    """
    Turn a sign-in code into active credentials. Persisting them is up to the caller.

    Raises:
        FetchError: If the user lookup fails
        ParseError: If the user lookup response is malformed
    """
    info = await fetch_info(code, fetcher, api_url)
    now = (clock or utcnow)()
    logger.info(f"Signed in remote user {info.id}" + (f" ({info.username})" if info.username else ""))

    return RemoteCredentials(
        session=code,
        expires=now + renewal_period,
        user_id=info.id,
        active=True,
    )
