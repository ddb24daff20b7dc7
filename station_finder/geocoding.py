# file: station_finder/geocoding.py

import aiohttp
import logging
from typing import Tuple

from station_finder import config
from station_finder.errors import GeocodeNotFound
from station_finder.gios_api import get_json


async def geocode(session: aiohttp.ClientSession, address: str,
                  base_url: str = config.NOMINATIM_URL,
                  country: str = config.GEOCODE_COUNTRY) -> Tuple[float, float]:
    """Resolve a free-form address to (lat, lon) with Nominatim."""
    params = {"q": f"{address}, {country}" if country else address, "format": "json", "limit": "1"}
    results = await get_json(session, f"{base_url.rstrip('/')}/search", params=params)
    if not isinstance(results, list) or not results:
        logging.info(f"No geocoding match for '{address}'")
        raise GeocodeNotFound(address)
    try:
        return float(results[0]["lat"]), float(results[0]["lon"])
    except (KeyError, TypeError, ValueError) as e:
        logging.warning(f"Unusable geocoding match for '{address}': {e}")
        raise GeocodeNotFound(address) from e
