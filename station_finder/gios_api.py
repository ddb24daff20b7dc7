# file: station_finder/gios_api.py

import aiohttp
import asyncio
import logging
from typing import List, Dict, Any, Optional
import certifi
import ssl

from station_finder import config
from station_finder.errors import NetworkError, ParseError
from station_finder.models import AirQualityIndex, Measurement, Sensor, Station
from station_finder.utils import parse_gios_date


def create_session() -> aiohttp.ClientSession:
    """Create an HTTP session able to talk to the GIOŚ servers."""
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    ssl_context.set_ciphers("DEFAULT@SECLEVEL=1")  # Lower security level to match older setups
    return aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(ssl=ssl_context),
        timeout=aiohttp.ClientTimeout(total=config.REQUEST_TIMEOUT),
        headers={"User-Agent": config.USER_AGENT},
    )


async def get_json(session: aiohttp.ClientSession, url: str, **kwargs) -> Any:
    """GET a JSON document; any transport failure or non-200 answer becomes a NetworkError."""
    try:
        async with session.get(url, **kwargs) as response:
            if response.status != 200:
                logging.warning(f"Request to {url} failed: HTTP {response.status}")
                raise NetworkError(url, status=response.status)
            return await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logging.error(f"Error requesting {url}: {e}")
        raise NetworkError(url, reason=str(e)) from e
    except ValueError as e:
        logging.error(f"Malformed JSON from {url}: {e}")
        raise NetworkError(url, reason="malformed response body") from e


def parse_station(record: Dict[str, Any]) -> Station:
    if not isinstance(record, dict):
        raise ParseError(f"Station record is not an object: {record!r}")
    if record.get("id") is None or record.get("gegrLat") is None or record.get("gegrLon") is None:
        raise ParseError(f"Station record without id or coordinates: {record.get('id')}")
    try:
        lat = float(record["gegrLat"])
        lon = float(record["gegrLon"])
        city = record.get("city") or {}
        commune = city.get("commune") or {}
        return Station(
            id=int(record["id"]),
            name=record.get("stationName") or "",
            lat=lat,
            lon=lon,
            city_name=city.get("name") or "",
            commune_name=commune.get("communeName") or "",
            district_name=commune.get("districtName") or "",
            province_name=commune.get("provinceName") or "",
            address_street=record.get("addressStreet"),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise ParseError(f"Invalid station record {record.get('id')}: {e}") from e


def parse_stations(payload: Any) -> List[Station]:
    """Turn the findAll payload into stations, skipping records that do not parse."""
    if not isinstance(payload, list):
        raise ParseError("Station list payload is not an array")
    stations = []
    for record in payload:
        try:
            stations.append(parse_station(record))
        except ParseError as e:
            logging.debug(f"Skipping station: {e}")
    return stations


def parse_sensors(station_id: int, payload: Any) -> List[Sensor]:
    if not isinstance(payload, list):
        raise ParseError(f"Sensor list of station {station_id} is not an array")
    sensors = []
    for record in payload:
        try:
            param = record.get("param") or {}
            sensors.append(Sensor(
                id=int(record["id"]),
                station_id=station_id,
                param_name=param.get("paramName") or "",
                param_formula=param.get("paramFormula") or "",
            ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logging.debug(f"Skipping sensor of station {station_id}: {e}")
    return sensors


def parse_sensor_data(payload: Any) -> tuple[str, List[Measurement]]:
    """Return the series key (parameter formula) and its non-null measurements."""
    if not isinstance(payload, dict):
        raise ParseError("Sensor data payload is not an object")
    measurements = []
    for value in payload.get("values") or []:
        try:
            if value.get("value") is None:
                continue
            measurements.append(Measurement(date=parse_gios_date(value["date"]), value=float(value["value"])))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logging.debug(f"Skipping measurement {value!r}: {e}")
    return payload.get("key") or "", measurements


def parse_index(payload: Any) -> Optional[AirQualityIndex]:
    if not isinstance(payload, dict):
        return None
    level = payload.get("stIndexLevel") or {}
    try:
        calc_date = parse_gios_date(payload.get("stCalcDate"))
    except (TypeError, ValueError) as e:
        logging.debug(f"Ignoring unparseable index date {payload.get('stCalcDate')!r}: {e}")
        calc_date = None
    try:
        return AirQualityIndex(
            calc_date=calc_date,
            level_id=level.get("id"),
            level_name=level.get("indexLevelName"),
        )
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid air quality index: {e}") from e


class GiosClient:
    """Async client for the GIOŚ REST API bound to one aiohttp session."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str = config.GIOS_URL):
        self.session = session
        self.base_url = base_url.rstrip("/")

    async def fetch_stations(self) -> List[Station]:
        payload = await get_json(self.session, f"{self.base_url}/station/findAll")
        try:
            stations = parse_stations(payload)
        except ParseError as e:
            raise NetworkError(f"{self.base_url}/station/findAll", reason=str(e)) from e
        logging.info(f"Fetched {len(stations)} stations")
        return stations

    async def fetch_sensors(self, station_id: int) -> List[Sensor]:
        url = f"{self.base_url}/station/sensors/{station_id}"
        try:
            return parse_sensors(station_id, await get_json(self.session, url))
        except ParseError as e:
            raise NetworkError(url, reason=str(e)) from e

    async def fetch_sensor_data(self, sensor_id: int) -> tuple[str, List[Measurement]]:
        url = f"{self.base_url}/data/getData/{sensor_id}"
        try:
            return parse_sensor_data(await get_json(self.session, url))
        except ParseError as e:
            raise NetworkError(url, reason=str(e)) from e

    async def fetch_index(self, station_id: int) -> Optional[AirQualityIndex]:
        url = f"{self.base_url}/aqindex/getIndex/{station_id}"
        try:
            return parse_index(await get_json(self.session, url))
        except ParseError as e:
            raise NetworkError(url, reason=str(e)) from e
