from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger

from bookstr.config import settings
from bookstr.errors import VerificationTimeout


def split_identifier(identifier: str) -> tuple[str, str] | None:
    """Split "alice@example.com" into ("alice", "example.com"). A bare domain means "_"."""
    identifier = identifier.strip().lower()
    if not identifier:
        return None
    name, sep, domain = identifier.rpartition("@")
    if not sep:
        name, domain = "_", identifier
    if not name or not domain or "." not in domain:
        return None
    return name, domain


class IdentityVerifier:
    """Checks author identifiers against the domain's well-known endpoint.

    A timeout or network error means "unverified", never an exception.
    """

    def __init__(self, *, timeout_s: float | None = None):
        self.timeout_s = timeout_s or settings.verify_timeout_s
        self._results: dict[tuple[str, str | None], bool] = {}

    async def _fetch(self, name: str, domain: str) -> dict[str, Any]:
        url = f"https://{domain}/.well-known/nostr.json"
        try:
            async with asyncio.timeout(self.timeout_s):
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    response = await client.get(url, params={"name": name})
                    response.raise_for_status()
                    return response.json()
        except (TimeoutError, httpx.TimeoutException) as e:
            raise VerificationTimeout(f"{name}@{domain}", self.timeout_s) from e

    async def verify(self, identifier: str, author: str | None = None) -> bool:
        key = (identifier.strip().lower(), author)
        if key in self._results:
            return self._results[key]

        parts = split_identifier(identifier)
        if parts is None:
            return False
        name, domain = parts

        try:
            payload = await self._fetch(name, domain)
        except VerificationTimeout as e:
            logger.warning(f"Identity check timed out: {e}")
            return False
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Identity check failed for {identifier}: {e}")
            return False

        names = payload.get("names") if isinstance(payload, dict) else None
        registered = names.get(name) if isinstance(names, dict) else None
        verified = bool(registered) and (author is None or registered == author)
        self._results[key] = verified
        return verified
