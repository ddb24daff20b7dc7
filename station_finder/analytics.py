# file: station_finder/analytics.py

import logging
from datetime import timedelta

import pandas as pd

from station_finder.errors import NoDataInWindow, NoHistoricalData
from station_finder.models import AnalyticsSummary, ChartPoint, SensorSummary, StationDetail, Trend
from station_finder.utils import time_ticks

WINDOW = timedelta(hours=24)
TICK_STEP = timedelta(hours=3)
TREND_THRESHOLD = 0.1


def classify_trend(first: float, last: float, mean: float) -> Trend:
    """Rising/falling when the window moved by more than 10% of its mean; exactly 10% is stable."""
    delta = last - first
    if delta > TREND_THRESHOLD * mean:
        return Trend.RISING
    if delta < -TREND_THRESHOLD * mean:
        return Trend.FALLING
    return Trend.STABLE


def measurements_frame(detail: StationDetail) -> pd.DataFrame:
    """Flatten the sensor/measurement tree; `position` is the sensor's index in the detail."""
    rows = [
        (position, measurement.date, measurement.value)
        for position, sensor in enumerate(detail.sensors)
        for measurement in sensor.measurements
    ]
    return pd.DataFrame(rows, columns=["position", "date", "value"])


def analyze(detail: StationDetail) -> AnalyticsSummary:
    """Statistics and trend per sensor over the 24h window ending at the newest measurement."""
    df = measurements_frame(detail)
    if df.empty:
        raise NoHistoricalData(f"Station {detail.station_id} has no measurements")

    latest = df["date"].max().to_pydatetime()
    start = latest - WINDOW
    window = df[(df["date"] >= start) & (df["date"] <= latest)]

    summaries = []
    for position, group in window.groupby("position", sort=True):
        sensor = detail.sensors[position]
        group = group.sort_values("date", kind="stable")
        values = group["value"]
        mean = float(values.mean())
        min_row = group.loc[values.idxmin()]
        max_row = group.loc[values.idxmax()]
        summaries.append(SensorSummary(
            sensor_id=sensor.id,
            param_name=sensor.param_name,
            param_formula=sensor.param_formula,
            count=len(group),
            min_value=float(min_row["value"]),
            min_date=min_row["date"].to_pydatetime(),
            max_value=float(max_row["value"]),
            max_date=max_row["date"].to_pydatetime(),
            mean=mean,
            trend=classify_trend(float(values.iloc[0]), float(values.iloc[-1]), mean),
            series=tuple(
                ChartPoint(date=date.to_pydatetime(), value=float(value))
                for date, value in zip(group["date"], values)
            ),
        ))

    if not summaries:
        raise NoDataInWindow(f"Station {detail.station_id} has no measurements between {start} and {latest}")

    logging.debug(f"Station {detail.station_id}: analyzed {len(summaries)} sensors over {start} - {latest}")
    return AnalyticsSummary(
        station_id=detail.station_id,
        window_start=start,
        window_end=latest,
        sensors=tuple(summaries),
        ticks=tuple(time_ticks(start, latest, TICK_STEP)),
        value_min=float(window["value"].min()),
        value_max=float(window["value"].max()),
    )
