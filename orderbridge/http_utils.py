# orderbridge/http_utils.py
import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

RETRY_ON_STATUS = frozenset({429, 500, 502, 503, 504})
# failures where the request never reached the server; safe to repeat any call
CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = 3,
    base_delay: float = 0.3,
    retry_on_status: Optional[frozenset] = None,
    retry_on: tuple = (httpx.TransportError,),
    **kwargs,
) -> httpx.Response:
    """Send one request, retrying transient failures with exponential backoff.

    Returns the last response once it is not retryable or attempts run out;
    re-raises the last transport error if no attempt got a response.
    """
    if retry_on_status is None:
        retry_on_status = RETRY_ON_STATUS
    attempt = 0
    while True:
        try:
            resp = await client.request(method, url, **kwargs)
        except retry_on as e:
            attempt += 1
            if attempt >= max_retries:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning("%s %s failed (%s), retry %d/%d in %.1fs", method, url, e, attempt, max_retries - 1, delay)
            await asyncio.sleep(delay)
            continue

        if resp.status_code not in retry_on_status:
            return resp
        attempt += 1
        if attempt >= max_retries:
            return resp
        delay = base_delay * (2 ** attempt)
        logger.warning("%s %s returned %d, retry %d/%d in %.1fs", method, url, resp.status_code, attempt, max_retries - 1, delay)
        await asyncio.sleep(delay)
