import asyncio
from datetime import datetime

import aiohttp
import pytest

from station_finder.aggregator import DetailAggregator
from station_finder.errors import GeocodeNotFound, NetworkError, ParseError
from station_finder.geocoding import geocode
from station_finder.gios_api import GiosClient, parse_index, parse_sensor_data, parse_sensors, parse_station, parse_stations

STATION_RECORD = {
    "id": 114,
    "stationName": "Wrocław, ul. Bartnicza",
    "gegrLat": "51.115933",
    "gegrLon": "17.141125",
    "city": {
        "id": 1064,
        "name": "Wrocław",
        "commune": {"communeName": "Wrocław", "districtName": "Wrocław", "provinceName": "DOLNOŚLĄSKIE"},
    },
    "addressStreet": "ul. Bartnicza",
}


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self.payload = payload

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Maps URL suffixes to (status, payload); a payload that is an exception is raised on json()."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        for suffix, answer in self.routes.items():
            if url.endswith(suffix):
                if isinstance(answer, aiohttp.ClientError):
                    raise answer
                return FakeResponse(*answer)
        return FakeResponse(404, None)


class TestParsing:
    def test_station_fields(self):
        station = parse_station(STATION_RECORD)
        assert station.id == 114
        assert station.lat == pytest.approx(51.115933)
        assert station.city_name == "Wrocław"
        assert station.province_name == "DOLNOŚLĄSKIE"
        assert station.address_street == "ul. Bartnicza"

    def test_optional_city_is_tolerated(self):
        record = dict(STATION_RECORD, city=None, addressStreet=None)
        station = parse_station(record)
        assert station.city_name == ""
        assert station.address_street is None

    @pytest.mark.parametrize("change", [
        {"id": None},
        {"gegrLat": None},
        {"gegrLon": "east"},
        {"gegrLat": "123.0"},
    ])
    def test_invalid_station_raises(self, change):
        with pytest.raises(ParseError):
            parse_station(dict(STATION_RECORD, **change))

    def test_bad_records_are_dropped_from_batch(self):
        stations = parse_stations([STATION_RECORD, dict(STATION_RECORD, id=None), "junk", dict(STATION_RECORD, id=115)])
        assert [s.id for s in stations] == [114, 115]

    def test_sensors(self):
        payload = [
            {"id": 92, "stationId": 14, "param": {"paramName": "dwutlenek azotu", "paramFormula": "NO2", "paramCode": "NO2"}},
            {"param": {"paramFormula": "CO"}},
        ]
        sensors = parse_sensors(14, payload)
        assert len(sensors) == 1
        assert sensors[0].param_formula == "NO2"
        assert sensors[0].station_id == 14

    def test_sensor_data_drops_null_values(self):
        key, measurements = parse_sensor_data({
            "key": "PM10",
            "values": [
                {"date": "2024-03-01 13:00:00", "value": None},
                {"date": "2024-03-01 12:00:00", "value": 30.5},
                {"date": "garbage", "value": 1.0},
            ],
        })
        assert key == "PM10"
        assert [(m.date, m.value) for m in measurements] == [(datetime(2024, 3, 1, 12), 30.5)]

    def test_index(self):
        index = parse_index({"id": 52, "stCalcDate": "2024-03-01 12:20:16",
                             "stIndexLevel": {"id": 1, "indexLevelName": "Dobry"}})
        assert index.calc_date == datetime(2024, 3, 1, 12, 20, 16)
        assert index.level_id == 1
        assert index.level_name == "Dobry"

    def test_index_with_unparseable_date_keeps_level(self):
        index = parse_index({"stCalcDate": "n/a", "stIndexLevel": {"id": 3, "indexLevelName": "Dostateczny"}})
        assert index.calc_date is None
        assert index.level_id == 3
        assert index.level_name == "Dostateczny"

    def test_index_without_level(self):
        index = parse_index({"id": 52, "stCalcDate": None, "stIndexLevel": None})
        assert index.level_id is None and index.calc_date is None


class TestGiosClient:
    def test_fetch_stations(self):
        session = FakeSession({"/station/findAll": (200, [STATION_RECORD, {"id": 1}])})
        stations = asyncio.run(GiosClient(session, "http://gios").fetch_stations())
        assert [s.id for s in stations] == [114]

    def test_empty_answer_is_not_an_error(self):
        session = FakeSession({"/station/findAll": (200, [])})
        assert asyncio.run(GiosClient(session, "http://gios").fetch_stations()) == []

    def test_non_200_raises_network_error(self):
        session = FakeSession({"/station/findAll": (500, None)})
        with pytest.raises(NetworkError) as info:
            asyncio.run(GiosClient(session, "http://gios").fetch_stations())
        assert info.value.status == 500

    def test_transport_error_raises_network_error(self):
        session = FakeSession({"/station/sensors/1": aiohttp.ClientConnectionError("refused")})
        with pytest.raises(NetworkError):
            asyncio.run(GiosClient(session, "http://gios").fetch_sensors(1))

    def test_malformed_body_raises_network_error(self):
        session = FakeSession({"/data/getData/5": (200, ValueError("bad json"))})
        with pytest.raises(NetworkError):
            asyncio.run(GiosClient(session, "http://gios").fetch_sensor_data(5))

    def test_fetch_index(self):
        session = FakeSession({"/aqindex/getIndex/7": (200, {"stCalcDate": "2024-03-01 12:00:00",
                                                             "stIndexLevel": {"id": 2, "indexLevelName": "Umiarkowany"}})})
        index = asyncio.run(GiosClient(session, "http://gios").fetch_index(7))
        assert index.level_name == "Umiarkowany"

    def test_detail_with_unparseable_index_date_is_ready(self):
        session = FakeSession({
            "/station/sensors/7": (200, [{"id": 70, "param": {"paramName": "pył zawieszony PM10", "paramFormula": "PM10"}}]),
            "/data/getData/70": (200, {"key": "PM10", "values": [{"date": "2024-03-01 12:00:00", "value": 18.0}]}),
            "/aqindex/getIndex/7": (200, {"stCalcDate": "n/a", "stIndexLevel": {"id": 1, "indexLevelName": "Dobry"}}),
        })
        detail = asyncio.run(DetailAggregator(GiosClient(session, "http://gios")).fetch_detail(7))
        assert detail.errors == ()
        assert detail.air_quality_index.level_name == "Dobry"
        assert detail.sensors[0].measurements[0].value == 18.0


class TestGeocode:
    def test_first_match(self):
        session = FakeSession({"/search": (200, [{"lat": "53.2740", "lon": "16.4700"}])})
        lat, lon = asyncio.run(geocode(session, "Wałcz ul. Południowa 10", base_url="http://osm", country="Polska"))
        assert (lat, lon) == (pytest.approx(53.274), pytest.approx(16.47))
        url, kwargs = session.requests[0]
        assert kwargs["params"]["q"] == "Wałcz ul. Południowa 10, Polska"
        assert kwargs["params"]["limit"] == "1"

    def test_no_match(self):
        session = FakeSession({"/search": (200, [])})
        with pytest.raises(GeocodeNotFound):
            asyncio.run(geocode(session, "Atlantyda", base_url="http://osm"))
