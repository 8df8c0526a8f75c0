"""
Location Linking

Resolves a free-text place name to coordinates with a Nominatim-compatible
geocoding API.
"""

import logging
import re
from typing import Any, Dict, List

import httpx

from almond_cloud.config import settings

logger = logging.getLogger(__name__)


def _canonical(display_name: str) -> str:
    return re.sub(r"[,\s]+", " ", display_name.lower()).strip()


def _to_location(place: Dict[str, Any]) -> Dict[str, Any]:
    display = place.get("display_name", "")
    return {
        "latitude": float(place["lat"]),
        "longitude": float(place["lon"]),
        "display": display,
        "canonical": _canonical(display),
        "rank": place.get("place_rank"),
        "importance": place.get("importance"),
    }


async def resolve_location(locale: str, search_term: str) -> List[Dict[str, Any]]:
    """
    Look up ``search_term``, with names localized for ``locale``.

    Returns:
        Up to five candidate locations, best match first
    """
    params = {
        "q": search_term,
        "format": "jsonv2",
        "accept-language": locale,
        "limit": 5,
    }
    async with httpx.AsyncClient(timeout=settings.LOCATION_TIMEOUT) as client:
        response = await client.get(settings.NOMINATIM_URL, params=params)
        response.raise_for_status()
        places = response.json()

    logger.debug(f"[Location] {search_term!r} ({locale}): {len(places)} results")
    return [_to_location(place) for place in places]
