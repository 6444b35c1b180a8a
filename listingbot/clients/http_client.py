"""Shared async HTTP transport for the marketplace and fleet backends.

One :class:`BackendHttpClient` per backend per cycle.  It owns an
:class:`httpx.AsyncClient` session and maps every failure into the
Listingbot exception taxonomy:

* HTTP ≥ 500 and connection-level failures (refused, reset, timeouts) raise
  :class:`~listingbot.core.exceptions.TransientBackendError`.
* Any other non-2xx status raises
  :class:`~listingbot.core.exceptions.BackendRequestError`.
* A 2xx body that is not JSON raises
  :class:`~listingbot.core.exceptions.MalformedDataError` from the
  ``*_json`` helpers.

Retries are handled by :mod:`tenacity` and apply to transient failures only.
The default budget is a single attempt: the next scheduled poll is the normal
retry path, and ``HTTP_MAX_ATTEMPTS`` lets an operator absorb short network
blips inside a request instead.

Typical usage::

    async with BackendHttpClient("fleet", base_url="http://fleet:80/api") as c:
        payload = await c.get_json("/rentedDevices/list")
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from listingbot.core.exceptions import (
    BackendRequestError,
    MalformedDataError,
    TransientBackendError,
)

__all__ = ["BackendHttpClient"]

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT: Final[float] = 20.0
_DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0

#: Bytes of a response body quoted in error messages.
_BODY_EXCERPT: Final[int] = 200

#: 1 s, 2 s, 4 s … capped at 30 s, plus up to 5 s of random jitter.
_backoff_wait = wait_exponential_jitter(initial=1, max=30, jitter=5)


class BackendHttpClient:
    """Async JSON-over-HTTP client bound to one backend.

    Args:
        backend: Short label (``"marketplace"`` / ``"fleet"``) used in log
            lines and carried by every raised :class:`BackendError`.
        base_url: Prefix for every relative request path.
        headers: Default headers sent with every request (e.g. auth).
        timeout: Overall per-request timeout in seconds.
        max_attempts: Attempts per request, including the first (≥ 1).

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """

    def __init__(
        self,
        backend: str,
        *,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        max_attempts: int = 1,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")

        self.backend = backend
        self._base_url = base_url
        self._default_headers: dict[str, str] = dict(headers or {})
        self._timeout = httpx.Timeout(timeout, connect=min(timeout, _DEFAULT_CONNECT_TIMEOUT))
        self._max_attempts = max_attempts
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> BackendHttpClient:
        await self._session()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the session; calling it twice is harmless."""
        session, self._http = self._http, None
        if session is not None and not session.is_closed:
            await session.aclose()
            logger.debug("%s session closed.", self.backend)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def get(self, url: str) -> httpx.Response:
        return await self._request("GET", url)

    async def post(self, url: str, *, json: Any | None = None) -> httpx.Response:
        return await self._request("POST", url, json=json)

    async def get_json(self, url: str) -> Any:
        """GET *url* and return the decoded JSON body."""
        return self._decode(await self.get(url), "GET", url)

    async def post_json(self, url: str, *, json: Any | None = None) -> Any:
        """POST *json* to *url* and return the decoded JSON body."""
        return self._decode(await self.post(url, json=json), "POST", url)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _session(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Accept": "application/json", **self._default_headers},
            )
            logger.debug("%s session opened for %s.", self.backend, self._base_url)
        return self._http

    async def _request(self, method: str, url: str, *, json: Any | None = None) -> httpx.Response:
        """Send one logical request within the retry budget."""

        def _log_retry(state: RetryCallState) -> None:
            logger.warning(
                "%s %s %s failed on attempt %d/%d (%s); retrying.",
                self.backend,
                method,
                url,
                state.attempt_number,
                self._max_attempts,
                state.outcome.exception() if state.outcome else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=_backoff_wait,
            retry=retry_if_exception_type(TransientBackendError),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(self._send, method, url, json)

    async def _send(self, method: str, url: str, json: Any | None) -> httpx.Response:
        session = await self._session()
        logger.debug("%s → %s %s", self.backend, method, url)
        try:
            response = await session.request(method=method, url=url, json=json)
        except httpx.TransportError as exc:
            raise TransientBackendError(
                self.backend, f"{method} {url} failed: {type(exc).__name__}: {exc}"
            ) from exc
        logger.debug("%s ← %s %s %d", self.backend, method, url, response.status_code)
        self._raise_for_status(response, method, url)
        return response

    def _raise_for_status(self, response: httpx.Response, method: str, url: str) -> None:
        status = response.status_code
        if response.is_success:
            return
        if status >= 500:
            raise TransientBackendError(
                self.backend, f"HTTP {status} from {method} {url}", status_code=status
            )
        raise BackendRequestError(
            self.backend,
            f"HTTP {status} from {method} {url}: {response.text[:_BODY_EXCERPT]}",
            status_code=status,
        )

    def _decode(self, response: httpx.Response, method: str, url: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedDataError(
                f"[{self.backend}] {method} {url} returned a non-JSON body: "
                f"{response.text[:_BODY_EXCERPT]!r}"
            ) from exc
