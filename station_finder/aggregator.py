# file: station_finder/aggregator.py

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from station_finder.errors import AggregationFailed
from station_finder.models import AirQualityIndex, Measurement, Sensor, StationDetail

DetailCallback = Callable[[StationDetail], Any]
ErrorCallback = Callable[[int, str], Any]


class AggregationState(str, Enum):
    STARTED = "started"
    AWAITING = "awaiting"
    READY = "ready"
    FAILED = "failed"


class AggregationContext:
    """
    Partial result of one station's fan-out fetch.

    The outstanding counter is only changed through register() and resolve().
    Work discovered mid-flight (the per-sensor series) must be registered before
    the sub-fetch that discovered it is resolved, so the counter cannot reach
    zero while anything is still pending.
    """

    def __init__(self, station_id: int):
        self.station_id = station_id
        self.state = AggregationState.STARTED
        self.outstanding = 0
        self.sensors: List[Sensor] = []
        self.measurements: Dict[int, List[Measurement]] = {}
        self.air_quality_index: Optional[AirQualityIndex] = None
        self.errors: List[str] = []
        self.failed = False
        self.waiters: List[asyncio.Future] = []

    @property
    def terminal(self) -> bool:
        return self.state in (AggregationState.READY, AggregationState.FAILED)

    def register(self, count: int = 1) -> None:
        if self.terminal:
            return
        self.outstanding += count
        self.state = AggregationState.AWAITING

    def resolve(self) -> bool:
        """Mark one sub-fetch as resolved. Returns True only for the call that completes the context."""
        if self.terminal:
            return False
        self.outstanding -= 1
        if self.outstanding > 0:
            return False
        self.state = AggregationState.FAILED if self.failed else AggregationState.READY
        return True

    def merge_series(self, sensor: Sensor, key: str, measurements: List[Measurement]) -> None:
        """Attach a measurement series to the sensor whose parameter formula matches the series key."""
        if sensor.param_formula == key:
            target = sensor
        else:
            target = next((s for s in self.sensors if s.param_formula == key), None)
        if target is None:
            logging.warning(f"Station {self.station_id}: no sensor with formula '{key}', dropping {len(measurements)} values")
            return
        self.measurements[target.id] = list(measurements)

    def build_detail(self) -> StationDetail:
        sensors = tuple(
            sensor.model_copy(update={"measurements": tuple(self.measurements.get(sensor.id, ()))})
            for sensor in self.sensors
        )
        return StationDetail(
            station_id=self.station_id,
            sensors=sensors,
            air_quality_index=self.air_quality_index,
            errors=tuple(self.errors),
        )


class DetailAggregator:
    """
    Fetches sensors, index and per-sensor series of a station concurrently and
    merges them into one StationDetail.

    `client` needs three coroutines: fetch_sensors(station_id),
    fetch_index(station_id) and fetch_sensor_data(sensor_id).
    """

    def __init__(self, client,
                 on_ready: Optional[DetailCallback] = None,
                 on_failed: Optional[DetailCallback] = None,
                 on_subfetch_error: Optional[ErrorCallback] = None):
        self.client = client
        self.on_ready = on_ready
        self.on_failed = on_failed
        self.on_subfetch_error = on_subfetch_error
        self._contexts: Dict[int, AggregationContext] = {}
        self._tasks: Set[asyncio.Task] = set()

    def state(self, station_id: int) -> Optional[AggregationState]:
        context = self._contexts.get(station_id)
        return context.state if context else None

    def begin_detail_fetch(self, station_id: int) -> None:
        """Start (or restart) the aggregation for a station. Must be called from a running event loop."""
        context = AggregationContext(station_id)
        previous = self._contexts.get(station_id)
        if previous is not None and not previous.terminal:
            logging.info(f"Restarting detail fetch for station {station_id}, discarding partial results")
            context.waiters.extend(previous.waiters)
            previous.waiters.clear()
        self._contexts[station_id] = context

        context.register(2)
        self._spawn(self._fetch_sensors(context))
        self._spawn(self._fetch_index(context))

    async def fetch_detail(self, station_id: int) -> StationDetail:
        """Begin a detail fetch and wait for its outcome."""
        self.begin_detail_fetch(station_id)
        waiter = asyncio.get_running_loop().create_future()
        self._contexts[station_id].waiters.append(waiter)
        return await waiter

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_current(self, context: AggregationContext) -> bool:
        return self._contexts.get(context.station_id) is context

    async def _fetch_sensors(self, context: AggregationContext) -> None:
        try:
            sensors = await self.client.fetch_sensors(context.station_id)
        except Exception as e:
            context.failed = True
            self._report(context, "sensor list", e)
            self._resolve(context)
            return

        if self._is_current(context):
            context.sensors = list(sensors)
            for sensor in context.sensors:
                context.register()
                self._spawn(self._fetch_series(context, sensor))
        self._resolve(context)

    async def _fetch_index(self, context: AggregationContext) -> None:
        try:
            index = await self.client.fetch_index(context.station_id)
        except Exception as e:
            context.failed = True
            self._report(context, "air quality index", e)
            self._resolve(context)
            return

        if self._is_current(context):
            context.air_quality_index = index
        self._resolve(context)

    async def _fetch_series(self, context: AggregationContext, sensor: Sensor) -> None:
        try:
            key, measurements = await self.client.fetch_sensor_data(sensor.id)
        except Exception as e:
            self._report(context, f"data of sensor {sensor.id} ({sensor.param_formula})", e)
            self._resolve(context)
            return

        if self._is_current(context):
            context.merge_series(sensor, key, measurements)
        self._resolve(context)

    def _report(self, context: AggregationContext, what: str, error: Exception) -> None:
        if not self._is_current(context):
            return
        message = f"{what}: {error}"
        context.errors.append(message)
        logging.warning(f"Station {context.station_id}: failed to fetch {message}")
        self._notify(self.on_subfetch_error, context.station_id, message)

    def _resolve(self, context: AggregationContext) -> None:
        if not self._is_current(context):
            return
        if context.resolve():
            self._finish(context)

    def _finish(self, context: AggregationContext) -> None:
        detail = context.build_detail()
        waiters, context.waiters = context.waiters, []
        if context.state is AggregationState.READY:
            logging.info(f"Station {context.station_id}: detail ready ({len(detail.sensors)} sensors)")
            self._notify(self.on_ready, detail)
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(detail)
        else:
            logging.error(f"Station {context.station_id}: detail fetch failed")
            self._notify(self.on_failed, detail)
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(AggregationFailed(context.station_id, detail.errors))

    @staticmethod
    def _notify(callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logging.error(f"Error in aggregation callback: {e}")
