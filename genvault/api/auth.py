"""
Derives the bearer credential and owner identity from a signed-in browser session.

The sign-in itself (including any anti-bot challenge) happens elsewhere; this
module only reads the session cookies that sign-in leaves behind, either from a
Playwright storage-state file or from a live browser context.
"""

import json
import logging
import re
from typing import Any, Iterable
from urllib.parse import urlparse

import aiofiles

from genvault.core.capabilities import Credentials
from genvault.exceptions import CredentialError
from genvault.utils.formatting import b64url_to_text

log = logging.getLogger(__name__)

AUTH_COOKIE_PATTERN = re.compile(r"auth-token(?:\.(\d+))?$")


def _cookie_matches_host(cookie: dict[str, Any], host: str) -> bool:
    domain = str(cookie.get("domain", "")).lstrip(".")
    return not domain or host == domain or host.endswith(f".{domain}")


def extract_credentials(cookies: Iterable[dict[str, Any]], base_uri: str) -> Credentials:
    """
    Rebuilds the session from chunked `auth-token` cookies and decodes it.

    The session may be split over `auth-token.0`, `auth-token.1`, ... cookies;
    the chunks are joined in index order, an optional `base64-` prefix is
    dropped and the remainder is base64url JSON holding an `access_token` JWT.
    The owner id is the JWT `sub` claim.

    Raises:
        CredentialError: If any step of the decoding fails.
    """
    host = urlparse(base_uri).hostname or ""
    parts = []
    for cookie in cookies:
        name = str(cookie.get("name", ""))
        match = AUTH_COOKIE_PATTERN.search(name)
        if match and _cookie_matches_host(cookie, host):
            index = int(match.group(1)) if match.group(1) else 0
            parts.append((index, str(cookie.get("value", ""))))

    if not parts:
        raise CredentialError("No auth-token cookies found for " + (host or base_uri))

    joined = "".join(value for _, value in sorted(parts, key=lambda p: p[0]))
    if joined.startswith("base64-"):
        joined = joined[len("base64-") :]

    try:
        session = json.loads(b64url_to_text(joined))
    except (ValueError, UnicodeDecodeError) as e:
        raise CredentialError(f"Session cookie could not be decoded: {e}") from e

    bearer = session.get("access_token") if isinstance(session, dict) else None
    if not isinstance(bearer, str) or not bearer:
        raise CredentialError("No access_token in session")

    try:
        claims = json.loads(b64url_to_text(bearer.split(".")[1]))
    except (IndexError, ValueError, UnicodeDecodeError) as e:
        raise CredentialError(f"Access token is not a valid JWT: {e}") from e

    owner_id = claims.get("sub") if isinstance(claims, dict) else None
    if not owner_id:
        raise CredentialError("No sub (user ID) in JWT payload")

    return Credentials(bearer_token=bearer, owner_id=str(owner_id))


class StorageStateCredentialSource:
    """
    Reads credentials from a Playwright storage-state JSON file.

    Refreshing simply re-reads the file, which picks up a token the browser
    collaborator has rotated in the meantime.
    """

    def __init__(self, state_path: str, base_uri: str):
        self.state_path = state_path
        self.base_uri = base_uri
        self.cookies: list[dict[str, Any]] = []

    async def load_cookies(self) -> list[dict[str, Any]]:
        """
        Returns the cookie list from the storage-state file.

        Raises:
            CredentialError: If the file is missing or not valid storage state.
        """
        try:
            async with aiofiles.open(self.state_path, encoding="utf-8") as f:
                state = json.loads(await f.read())
        except FileNotFoundError as e:
            raise CredentialError(
                f"Session state file not found at '{self.state_path}'. "
                "Sign in with the browser first."
            ) from e
        except (OSError, ValueError) as e:
            raise CredentialError(f"Session state file is unreadable: {e}") from e

        cookies = state.get("cookies") if isinstance(state, dict) else None
        if not isinstance(cookies, list):
            raise CredentialError("Session state file has no cookie list.")
        return cookies

    async def read(self) -> Credentials:
        """
        Loads the cookies (kept on `cookies` for the HTTP client) and decodes
        the credential from them.

        Raises:
            CredentialError: If the file or the session cookie is unusable.
        """
        self.cookies = await self.load_cookies()
        credentials = extract_credentials(self.cookies, self.base_uri)
        log.debug(
            f"Bearer token extracted ({len(credentials.bearer_token)} chars), "
            f"owner: {credentials.owner_id}"
        )
        return credentials
