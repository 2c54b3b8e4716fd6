"""External Rick & Morty API client (fetch service).

This module encapsulates the single interaction the screen has with the public
Rick & Morty REST API: build the listing URL (optionally filtered by name), issue
one GET, map the status code to a result and decode the body into immutable
``Character`` records. There is deliberately no retry, backoff or caching here;
a failed call is surfaced to the caller, which offers a manual retry.

It also exposes a quick upstream probe used by the application's health check.
"""

import logging
import time
from typing import List, Optional

import httpx
from pydantic import ValidationError

from . import metrics
from .errors import DecodeError, TransportFailure, UpstreamHTTPError
from .schemas import Character, CharacterListResponse
from .settings import settings

log = logging.getLogger(__name__)


def normalize_filter(name: Optional[str]) -> Optional[str]:
    """Trim a name filter; blank input means "no filter".

    Args:
        name: Raw filter text or ``None``.

    Returns:
        The trimmed filter, or ``None`` if nothing is left after trimming.
    """
    if name is None:
        return None
    trimmed = name.strip()
    return trimmed or None


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "body"
        parts.append(f"{loc}: {err['msg']}")
    return "Invalid characters payload: " + "; ".join(parts)


def decode_characters(body: bytes) -> List[Character]:
    """Decode a 200 response body into characters.

    The whole page fails if any element is malformed; no partial list is returned.

    Args:
        body: Raw response bytes.

    Returns:
        Characters in upstream order.

    Raises:
        DecodeError: On malformed JSON or a missing/ill-typed required field.
    """
    try:
        page = CharacterListResponse.model_validate_json(body)
    except ValidationError as exc:
        raise DecodeError(_describe_validation_error(exc)) from exc
    return list(page.results)


class CharacterService:
    """Fetches one page of characters from the upstream API.

    The httpx client is injected so the composition root owns its lifecycle and
    tests can hand in a client backed by a fake transport.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = settings.API_BASE_URL,
        timeout: Optional[float] = settings.REQUEST_TIMEOUT,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def listing_url(self) -> str:
        return f"{self._base_url}/character"

    def build_url(self, name: Optional[str] = None) -> httpx.URL:
        """Return the request URL, percent-encoding the trimmed filter if any."""
        name = normalize_filter(name)
        if name is None:
            return httpx.URL(self.listing_url)
        return httpx.URL(f"{self.listing_url}/", params={"name": name})

    async def fetch_characters(self, name: Optional[str] = None) -> List[Character]:
        """Fetch the first page of characters, optionally filtered by name.

        Status mapping:
          * 200 -> decoded ``results``
          * 404 -> ``[]`` (upstream's way of saying "no matches")
          * anything else -> ``UpstreamHTTPError``

        Args:
            name: Optional name filter; trimmed, blank means unfiltered.

        Returns:
            Characters in upstream order (possibly empty).

        Raises:
            UpstreamHTTPError: Unexpected status code.
            DecodeError: Body could not be decoded.
            TransportFailure: httpx raised a request/transport error.
        """
        url = self.build_url(name)
        kwargs = {} if self._timeout is None else {"timeout": self._timeout}
        t0 = time.perf_counter()
        try:
            r = await self._client.get(url, **kwargs)
        except httpx.RequestError as exc:
            log.warning("upstream.transport_error url=%s err=%r", url, exc)
            metrics.record_fetch(TransportFailure.kind, time.perf_counter() - t0)
            raise TransportFailure(f"Network error: {str(exc) or repr(exc)}") from exc

        elapsed = time.perf_counter() - t0

        if r.status_code == 404:
            log.info("upstream.not_found url=%s -> empty result", url)
            metrics.record_fetch("not_found", elapsed)
            return []

        if r.status_code != 200:
            log.warning("upstream.http_error status=%d url=%s", r.status_code, url)
            metrics.record_fetch(UpstreamHTTPError.kind, elapsed)
            raise UpstreamHTTPError(r.status_code)

        try:
            characters = decode_characters(r.content)
        except DecodeError as exc:
            log.warning("upstream.decode_error url=%s detail=%s", url, exc.message)
            metrics.record_fetch(exc.kind, elapsed)
            raise

        log.info("upstream.ok url=%s returned=%d", url, len(characters))
        metrics.record_fetch("success" if characters else "empty", elapsed)
        return characters

    async def probe(self) -> bool:
        """Perform a lightweight upstream health probe.

        Returns:
            True if the upstream root API endpoint returns HTTP 200,
            otherwise False (including transport errors).
        """
        try:
            r = await self._client.get(self._base_url, timeout=5.0)
            return r.status_code == 200
        except httpx.HTTPError as exc:
            log.debug("upstream.probe_failed err=%r", exc)
            return False
