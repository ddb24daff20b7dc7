#file: station_finder/models.py

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Tuple


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class Station(FrozenModel):
    id: int = Field(..., description="Unique identifier of the station")
    name: str = Field("", description="Station name")
    lat: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    lon: float = Field(..., ge=-180, le=180, description="Longitude in degrees")
    city_name: str = Field("", description="City the station is located in")
    commune_name: str = Field("", description="Commune name")
    district_name: str = Field("", description="District name")
    province_name: str = Field("", description="Province name")
    address_street: Optional[str] = Field(None, description="Street address")


class Measurement(FrozenModel):
    date: datetime = Field(..., description="Measurement timestamp")
    value: float = Field(..., description="Measured value")


class Sensor(FrozenModel):
    id: int = Field(..., description="Unique identifier of the sensor")
    station_id: int = Field(..., description="Station the sensor belongs to")
    param_name: str = Field("", description="Measured parameter, e.g. 'pył zawieszony PM10'")
    param_formula: str = Field("", description="Parameter short code, e.g. 'PM10'")
    measurements: Tuple[Measurement, ...] = Field((), description="Measurement series (unordered)")


class AirQualityIndex(FrozenModel):
    calc_date: Optional[datetime] = Field(None, description="Index computation timestamp")
    level_id: Optional[int] = Field(None, description="Index level id")
    level_name: Optional[str] = Field(None, description="Index level name, e.g. 'Dobry'")


class StationDetail(FrozenModel):
    station_id: int
    sensors: Tuple[Sensor, ...] = ()
    air_quality_index: Optional[AirQualityIndex] = None
    errors: Tuple[str, ...] = Field((), description="Sub-fetches that failed while aggregating")

    def sensor_by_formula(self, formula: str) -> Optional[Sensor]:
        return next((sensor for sensor in self.sensors if sensor.param_formula == formula), None)


class HistoryEntry(FrozenModel):
    station: Station
    detail: Optional[StationDetail] = None
    saved_at: datetime = Field(..., description="Save time, timezone-aware UTC")


class Trend(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


class ChartPoint(FrozenModel):
    date: datetime
    value: float


class SensorSummary(FrozenModel):
    sensor_id: int
    param_name: str
    param_formula: str
    count: int
    min_value: float
    min_date: datetime
    max_value: float
    max_date: datetime
    mean: float
    trend: Trend
    series: Tuple[ChartPoint, ...] = Field((), description="In-window points sorted by date")


class AnalyticsSummary(FrozenModel):
    station_id: int
    window_start: datetime
    window_end: datetime
    sensors: Tuple[SensorSummary, ...]
    ticks: Tuple[datetime, ...]
    value_min: float
    value_max: float
