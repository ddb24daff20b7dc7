# file: station_finder/errors.py


class StationFinderError(Exception):
    """Base class for every error raised by the station finder core."""


class NetworkError(StationFinderError):
    """Transport failure or non-success response from an upstream service."""

    def __init__(self, url: str, status: int | None = None, reason: str | None = None):
        self.url = url
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else (reason or "connection failed")
        super().__init__(f"Request to {url} failed: {detail}")


class ParseError(StationFinderError):
    """A single upstream record could not be turned into a model."""


class GeocodeNotFound(StationFinderError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No location found for address: {address}")


class NoCandidates(StationFinderError):
    """Nearest-station lookup over an empty station set."""


class NoHistoricalData(StationFinderError):
    """No sensor of the station detail carries any measurement."""


class NoDataInWindow(StationFinderError):
    """Every sensor was excluded by the trailing 24h window."""


class HistoryIoError(StationFinderError):
    """The history file could not be read or written."""


class AggregationFailed(StationFinderError):
    """The sensor list or index of a station could not be retrieved at all."""

    def __init__(self, station_id: int, errors: tuple = ()):
        self.station_id = station_id
        self.errors = tuple(errors)
        super().__init__(f"Aggregation for station {station_id} failed: {'; '.join(self.errors)}")
