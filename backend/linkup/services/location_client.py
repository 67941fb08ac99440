import asyncio
import logging
import re
from typing import List, Optional

import httpx

from ..config import Settings

# Set up logger
logger = logging.getLogger(__name__)

# A capitalised word after a locative ("in", "near", Patois "inna"/"deh", ...)
LOCATION_PATTERN = re.compile(r"\b(?i:in|at|to|from|near|inna|deh|a)\s+([A-Z][a-zA-Z]{2,})\b")
MIN_SIMILARITY = 0.6


def similarity(a: str, b: str) -> float:
    """Share of positions where the shorter string agrees with the longer one."""
    longer, shorter = (a, b) if len(a) > len(b) else (b, a)
    if not longer:
        return 1.0
    mismatches = sum(1 for i, ch in enumerate(shorter) if longer[i] != ch)
    return (len(longer) - mismatches) / len(longer)


def find_candidates(text: str) -> List[str]:
    seen = []
    for match in LOCATION_PATTERN.finditer(text or ""):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


class LocationCorrector:
    """Fixes misheard Jamaican place names against OpenStreetMap Nominatim.

    Every lookup is bounded by ``location_timeout``. A failed lookup leaves
    that candidate as transcribed.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.base_url = settings.nominatim_base_url.rstrip("/")
        self.country_codes = settings.location_country_codes
        self.timeout = settings.location_timeout
        self.max_lookups = settings.location_max_lookups
        self.delay = settings.location_lookup_delay
        self.user_agent = settings.location_user_agent
        self.transport = transport

    async def correct(self, text: str) -> str:
        candidates = find_candidates(text)[: self.max_lookups]
        if not candidates:
            return text

        corrected = text
        for i, candidate in enumerate(candidates):
            if i and self.delay:
                await asyncio.sleep(self.delay)
            place = await self.lookup(candidate)
            if not place or place == candidate:
                continue
            if similarity(candidate.lower(), place.lower()) > MIN_SIMILARITY:
                logger.info(f"Location corrected: {candidate!r} -> {place!r}")
                corrected = re.sub(rf"\b{re.escape(candidate)}\b", place, corrected, flags=re.I)
        return corrected

    async def lookup(self, name: str) -> Optional[str]:
        params = {
            "q": name,
            "countrycodes": self.country_codes,
            "format": "json",
            "addressdetails": 1,
            "limit": 2,
        }
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(
                    f"{self.base_url}/search",
                    params=params,
                    headers={"User-Agent": self.user_agent},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                results = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Location lookup failed for {name!r}: {type(e).__name__}: {e}")
            return None

        if not isinstance(results, list) or not results:
            return None
        top = results[0] if isinstance(results[0], dict) else {}
        address = top.get("address") or {}
        return address.get("suburb") or address.get("city") or address.get("town") or top.get("name")
