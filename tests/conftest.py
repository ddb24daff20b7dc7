import asyncio
from datetime import datetime, timedelta

import pytest

from station_finder.history import HistoryStore
from station_finder.models import Measurement, Sensor, Station, StationDetail


async def settle(rounds: int = 10):
    """Let every ready task run until the loop is idle again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class GatedClient:
    """Fake GIOŚ client whose every call blocks until the test resolves it."""

    def __init__(self):
        self.gates = {}

    def _gate(self, key):
        future = asyncio.get_running_loop().create_future()
        self.gates.setdefault(key, []).append(future)
        return future

    def resolve(self, key, value=None, error=None, call=-1):
        future = self.gates[key][call]
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)

    async def fetch_sensors(self, station_id):
        return await self._gate(("sensors", station_id))

    async def fetch_index(self, station_id):
        return await self._gate(("index", station_id))

    async def fetch_sensor_data(self, sensor_id):
        return await self._gate(("data", sensor_id))


class StaticClient:
    """Fake GIOŚ client answering immediately from canned data."""

    def __init__(self, stations=(), sensors=None, series=None, index=None, error=None):
        self.stations = list(stations)
        self.sensors = sensors or {}
        self.series = series or {}
        self.index = index
        self.error = error
        self.session = None

    async def fetch_stations(self):
        if self.error:
            raise self.error
        return list(self.stations)

    async def fetch_sensors(self, station_id):
        return list(self.sensors.get(station_id, []))

    async def fetch_index(self, station_id):
        return self.index

    async def fetch_sensor_data(self, sensor_id):
        return self.series[sensor_id]


def make_station(station_id=1, city="Warszawa", lat=52.2297, lon=21.0122, name=None):
    return Station(id=station_id, name=name or f"Stacja {station_id}", lat=lat, lon=lon, city_name=city)


def make_sensor(sensor_id, formula, values=(), station_id=1):
    return Sensor(
        id=sensor_id,
        station_id=station_id,
        param_name=f"param {formula}",
        param_formula=formula,
        measurements=tuple(Measurement(date=date, value=value) for date, value in values),
    )


@pytest.fixture
def now():
    return datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture
def detail(now):
    return StationDetail(
        station_id=1,
        sensors=(
            make_sensor(10, "PM10", [(now - timedelta(hours=23), 10.0), (now - timedelta(hours=1), 15.0)]),
            make_sensor(11, "NO2", [(now - timedelta(hours=23), 10.0), (now - timedelta(hours=1), 9.9)]),
        ),
    )


@pytest.fixture
def history_store(tmp_path):
    return HistoryStore(str(tmp_path / "history.json"))
