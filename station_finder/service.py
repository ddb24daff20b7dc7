# file: station_finder/service.py

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from pydantic import Field

from station_finder.aggregator import DetailAggregator
from station_finder.analytics import analyze
from station_finder.distance import nearest
from station_finder.errors import (AggregationFailed, GeocodeNotFound, NetworkError, NoCandidates, NoHistoricalData,
                                   StationFinderError)
from station_finder.geocoding import geocode
from station_finder.history import HistoryStore
from station_finder.models import (AnalyticsSummary, FrozenModel, HistoryEntry, Station, StationDetail)
from station_finder.utils import get_current_time

Geocoder = Callable[[str], Awaitable[Tuple[float, float]]]

STATIONS_CHANGED = "stations_changed"
RESULT_CHANGED = "result_changed"
USER_LOCATION_CHANGED = "user_location_changed"
USER_ADDRESS_CHANGED = "user_address_changed"
STATION_DETAILS_CHANGED = "station_details_changed"
HISTORY_CHANGED = "history_changed"
ANALYTICS_CHANGED = "analytics_changed"
IS_FROM_HISTORY_CHANGED = "is_from_history_changed"
NETWORK_ERROR = "network_error"

NO_CONNECTION_MESSAGE = "Brak połączenia z internetem/bazą danych"


class StationFinderState(FrozenModel):
    """Everything the UI renders, as one immutable snapshot."""
    stations: Tuple[Station, ...] = ()
    saved_station_ids: Tuple[int, ...] = ()
    nearest_distance_km: Optional[float] = None
    station_detail: Optional[StationDetail] = None
    history: Tuple[HistoryEntry, ...] = ()
    analytics: Optional[AnalyticsSummary] = None
    result: str = ""
    user_location: Optional[Tuple[float, float]] = None
    user_address: str = ""
    is_from_history: bool = False


class StationEvent(FrozenModel):
    name: str
    message: Optional[str] = Field(None, description="Error text for network_error events")


class StationFinder:
    """
    Station search, detail aggregation, history and analytics behind one object.

    State is only exposed as immutable snapshots. Every change is announced as a
    StationEvent on the queues handed out by subscribe().
    """

    def __init__(self, client, history: HistoryStore, geocoder: Optional[Geocoder] = None):
        self.client = client
        self.history = history
        self.geocoder = geocoder or (lambda address: geocode(client.session, address))
        self.aggregator = DetailAggregator(
            client,
            on_ready=self._on_detail_ready,
            on_failed=self._on_detail_failed,
            on_subfetch_error=self._on_subfetch_error,
        )
        self._queues: List[asyncio.Queue] = []
        self._stations: Tuple[Station, ...] = ()
        self._saved_ids: Set[int] = set()
        self._nearest_distance: Optional[float] = None
        self._detail: Optional[StationDetail] = None
        self._requested_station_id: Optional[int] = None
        self._analytics: Optional[AnalyticsSummary] = None
        self._result = ""
        self._user_location: Optional[Tuple[float, float]] = None
        self._user_address = ""
        self._is_from_history = False

    # --- Projections ---
    @property
    def stations(self) -> Tuple[Station, ...]:
        return self._stations

    @property
    def station_detail(self) -> Optional[StationDetail]:
        return self._detail

    @property
    def analytics(self) -> Optional[AnalyticsSummary]:
        return self._analytics

    @property
    def result(self) -> str:
        return self._result

    def snapshot(self) -> StationFinderState:
        return StationFinderState(
            stations=self._stations,
            saved_station_ids=tuple(sorted(self._saved_ids)),
            nearest_distance_km=self._nearest_distance,
            station_detail=self._detail,
            history=self.history.entries,
            analytics=self._analytics,
            result=self._result,
            user_location=self._user_location,
            user_address=self._user_address,
            is_from_history=self._is_from_history,
        )

    # --- Change notifications ---
    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=50)
        self._queues.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._queues:
            self._queues.remove(q)

    def _emit(self, *names: str, message: Optional[str] = None) -> None:
        for name in names:
            event = StationEvent(name=name, message=message)
            for q in self._queues:
                if q.full():
                    # Drop oldest if full
                    q.get_nowait()
                q.put_nowait(event)

    def _set_result(self, text: str) -> None:
        self._result = text
        self._emit(RESULT_CHANGED)

    def _network_failure(self, error: StationFinderError, text: str = NO_CONNECTION_MESSAGE) -> None:
        logging.error(f"{text}: {error}")
        self._set_result(text)
        self._emit(NETWORK_ERROR, message=str(error))

    def _reset_search(self, result: str = "") -> None:
        self._user_location = None
        self._user_address = ""
        self._result = result
        self._is_from_history = False
        self._emit(USER_LOCATION_CHANGED, USER_ADDRESS_CHANGED, RESULT_CHANGED, IS_FROM_HISTORY_CHANGED)

    def _set_stations(self, stations, distance: Optional[float] = None, fresh: bool = True) -> None:
        """Replace the station list; a freshly fetched list starts with nothing marked as saved."""
        if fresh:
            self._saved_ids.clear()
        self._stations = tuple(stations)
        self._nearest_distance = distance
        self._emit(STATIONS_CHANGED)

    # --- Station search ---
    async def fetch_all_stations(self) -> Tuple[Station, ...]:
        self._reset_search()
        try:
            stations = await self.client.fetch_stations()
        except NetworkError as e:
            self._network_failure(e)
            raise
        self._set_stations(stations)
        return self._stations

    async def fetch_stations_by_city(self, city: str) -> Tuple[Station, ...]:
        self._reset_search(city)
        try:
            stations = await self.client.fetch_stations()
        except NetworkError as e:
            self._network_failure(e)
            raise
        matching = [station for station in stations if station.city_name == city]
        self._set_stations(matching)
        self._set_result("" if matching else f"Nie znaleziono stacji w miejscowości {city}")
        return self._stations

    async def fetch_nearest_station(self, address: str) -> Tuple[Station, float]:
        try:
            lat, lon = await self.geocoder(address)
        except GeocodeNotFound as e:
            self._network_failure(e, f"Nie znaleziono lokalizacji: {address}")
            raise
        except NetworkError as e:
            self._network_failure(e)
            raise

        self._user_location = (lat, lon)
        self._user_address = address
        self._is_from_history = False
        self._emit(USER_LOCATION_CHANGED, USER_ADDRESS_CHANGED, IS_FROM_HISTORY_CHANGED)
        self._set_result(f"{lat} {lon}")

        try:
            stations = await self.client.fetch_stations()
        except NetworkError as e:
            self._network_failure(e)
            raise
        try:
            station, distance = nearest(lat, lon, stations)
        except NoCandidates as e:
            self._set_stations(())
            self._network_failure(e, "Nie znaleziono żadnej stacji pomiarowej")
            raise
        self._set_stations([station], distance)
        self._set_result(f"Najbliższa stacja: {station.name}, Odległość: {distance:.2f} km")
        return station, distance

    # --- Station detail ---
    def begin_station_details(self, station_id: int) -> None:
        """Start aggregating a station's detail; the outcome arrives as a station_details_changed or network_error event."""
        self._requested_station_id = station_id
        self.aggregator.begin_detail_fetch(station_id)

    async def fetch_station_details(self, station_id: int) -> StationDetail:
        self._requested_station_id = station_id
        return await self.aggregator.fetch_detail(station_id)

    def _on_detail_ready(self, detail: StationDetail) -> None:
        if detail.station_id != self._requested_station_id:
            logging.debug(f"Ignoring detail of station {detail.station_id}, not the selected one")
            return
        self._detail = detail
        self._analytics = None
        self._is_from_history = False
        self._emit(STATION_DETAILS_CHANGED, ANALYTICS_CHANGED, IS_FROM_HISTORY_CHANGED)

    def _on_detail_failed(self, detail: StationDetail) -> None:
        if detail.station_id != self._requested_station_id:
            logging.debug(f"Ignoring failed detail of station {detail.station_id}, not the selected one")
            return
        self._network_failure(AggregationFailed(detail.station_id, detail.errors))

    def _on_subfetch_error(self, station_id: int, message: str) -> None:
        self._emit(NETWORK_ERROR, message=f"Station {station_id}: {message}")

    # --- History ---
    def load_history(self) -> Tuple[HistoryEntry, ...]:
        entries = self.history.load()
        self._emit(HISTORY_CHANGED)
        return entries

    def save_station_to_history(self, station_id: int) -> bool:
        """Save a station from the current list, with its detail when it is the one on display."""
        station = next((s for s in self._stations if s.id == station_id), None)
        if station is None or station_id in self._saved_ids:
            return False
        detail = self._detail if self._detail is not None and self._detail.station_id == station_id else None
        entry = HistoryEntry(station=station, detail=detail, saved_at=get_current_time())
        if not self.history.append(entry):
            return False
        self._saved_ids.add(station_id)
        self._emit(HISTORY_CHANGED, STATIONS_CHANGED)
        return True

    def display_station_from_history(self, index: int) -> Optional[HistoryEntry]:
        entry = self.history.get(index)
        if entry is None:
            return None
        self._set_stations([entry.station], fresh=False)
        self._saved_ids.add(entry.station.id)
        self._user_location = None
        self._user_address = ""
        self._requested_station_id = entry.station.id
        self._detail = entry.detail or StationDetail(station_id=entry.station.id)
        self._analytics = None
        self._is_from_history = True
        self._emit(USER_LOCATION_CHANGED, USER_ADDRESS_CHANGED, STATION_DETAILS_CHANGED,
                   ANALYTICS_CHANGED, IS_FROM_HISTORY_CHANGED)
        return entry

    def remove_station_from_history(self, index: int) -> bool:
        removed = self.history.remove_at(index)
        if removed:
            self._saved_ids &= {entry.station.id for entry in self.history.entries}
            self._emit(HISTORY_CHANGED)
        return removed

    def clear_history(self) -> bool:
        cleared = self.history.clear()
        if cleared:
            self._saved_ids.clear()
            self._emit(HISTORY_CHANGED)
        return cleared

    def stations_for_city(self, city: str) -> List[HistoryEntry]:
        return self.history.query_by_city(city)

    # --- Analytics ---
    def compute_analytics(self) -> AnalyticsSummary:
        """Summarize the detail on display; raises NoHistoricalData/NoDataInWindow when there is nothing to show."""
        try:
            if self._detail is None:
                raise NoHistoricalData("No station detail loaded")
            summary = analyze(self._detail)
        except StationFinderError as e:
            self._analytics = None
            self._emit(ANALYTICS_CHANGED)
            self._set_result(str(e))
            raise
        self._analytics = summary
        self._emit(ANALYTICS_CHANGED)
        return summary

    def analyze_history_entry(self, index: int) -> Optional[AnalyticsSummary]:
        if self.display_station_from_history(index) is None:
            return None
        return self.compute_analytics()
