"""Client for an optional remote duplicate-check service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from ..logging import get_logger
from ..store.base import ImageRecord

logger = get_logger(__name__)

HEALTH_PATH = "/health"
CHECK_HASH_PATH = "/images/check-hash"


class RemoteUnavailable(Exception):
    """Raised when the remote service cannot be reached or answers badly."""


@dataclass(frozen=True)
class RemoteLookup:
    exists: bool
    record: Optional[ImageRecord] = None


class RemoteDuplicateChecker:
    """
    Asks a remote service whether a fingerprint is already saved.

    The service only knows exact matches. Every failure surfaces as
    ``RemoteUnavailable`` so callers can fall back to a local scan.
    """

    def __init__(
        self,
        base_url: str,
        probe_timeout: float = 2.0,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.probe_timeout = probe_timeout
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def probe(self) -> None:
        """
        Check that the service answers within ``probe_timeout``.

        Raises:
            RemoteUnavailable: On timeout, transport error or non-2xx status
        """
        url = f"{self.base_url}{HEALTH_PATH}"
        try:
            response = await self._get_client().get(url, timeout=self.probe_timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"Probe of {url} failed: {exc}") from exc

    async def lookup(self, fingerprint: str) -> RemoteLookup:
        """
        Ask whether ``fingerprint`` is stored remotely.

        Raises:
            RemoteUnavailable: On any transport, status or payload problem
        """
        url = f"{self.base_url}{CHECK_HASH_PATH}"
        try:
            response = await self._get_client().get(
                url, params={"hash": fingerprint}, timeout=self.timeout
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"Lookup at {url} failed: {exc}") from exc
        except ValueError as exc:
            raise RemoteUnavailable(f"Lookup at {url} returned invalid JSON: {exc}") from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("exists"), bool):
            raise RemoteUnavailable(f"Lookup at {url} returned an unexpected payload")

        record = None
        raw_record = payload.get("record")
        if payload["exists"] and isinstance(raw_record, dict):
            try:
                record = ImageRecord.from_dict(raw_record)
            except (TypeError, ValueError) as exc:
                logger.debug(f"Ignoring unparseable remote record: {exc}")

        return RemoteLookup(exists=payload["exists"], record=record)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
