# orderbridge/sheets_auth.py
import asyncio
import logging
import time
from typing import Callable, Optional

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from .config import GOOGLE_SHEETS_SCOPE
from .errors import LedgerError
from .http_utils import request_with_retry

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = 3600
# refresh this many seconds before the token actually expires
EXPIRY_MARGIN = 60


def create_assertion(info: dict, scope: str = GOOGLE_SHEETS_SCOPE, now: Optional[int] = None) -> str:
    """Sign the RS256 JWT a service account trades for an access token."""
    now = int(time.time()) if now is None else now
    claims = {
        "iss": info["client_email"],
        "scope": scope,
        "aud": info.get("token_uri", DEFAULT_TOKEN_URI),
        "iat": now,
        "exp": now + ASSERTION_LIFETIME,
    }
    headers = {"kid": info["private_key_id"]} if info.get("private_key_id") else None
    return jwt.encode(claims, info["private_key"], algorithm="RS256", headers=headers)


class ServiceAccountTokenSource:
    """OAuth access tokens for a Google service account, cached until near expiry."""

    def __init__(self, client: httpx.AsyncClient, load_info: Callable[[], dict], scope: str = GOOGLE_SHEETS_SCOPE,
                 max_retries: int = 3, base_delay: float = 0.3):
        self._client = client
        # credentials are read on first use so the app can start without them
        self._load_info = load_info
        self._info: Optional[dict] = None
        self._scope = scope
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def token(self) -> str:
        async with self._lock:
            if self._token and time.time() < self._expires_at - EXPIRY_MARGIN:
                return self._token
            self._token, self._expires_at = await self._fetch()
            return self._token

    async def _fetch(self) -> tuple[str, float]:
        if self._info is None:
            self._info = self._load_info()
        try:
            assertion = create_assertion(self._info, self._scope)
        except (KeyError, JOSEError) as e:
            raise LedgerError(f"Invalid service account credentials: {e}") from e

        token_uri = self._info.get("token_uri", DEFAULT_TOKEN_URI)
        try:
            resp = await request_with_retry(
                self._client, "POST", token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                max_retries=self._max_retries, base_delay=self._base_delay,
            )
        except httpx.HTTPError as e:
            raise LedgerError(f"Token exchange failed: {e}") from e
        if resp.status_code != 200:
            raise LedgerError(f"Token exchange returned {resp.status_code}: {resp.text}")

        try:
            body = resp.json()
        except ValueError as e:
            raise LedgerError(f"Token exchange returned a non-JSON body: {resp.text[:200]}") from e
        if not isinstance(body, dict) or "access_token" not in body:
            raise LedgerError("Token exchange response has no access_token")
        logger.info("Obtained ledger access token for %s", self._info.get("client_email"))
        return body["access_token"], time.time() + float(body.get("expires_in", ASSERTION_LIFETIME))
