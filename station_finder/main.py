# file: station_finder/main.py

import logging
import uvicorn
from fastapi import FastAPI, Query, HTTPException, Request
from fastapi.responses import StreamingResponse
from contextlib import asynccontextmanager
from typing import List

from station_finder import config
from station_finder.errors import (AggregationFailed, GeocodeNotFound, NetworkError, NoCandidates,
                                   NoDataInWindow, NoHistoricalData)
from station_finder.gios_api import GiosClient, create_session
from station_finder.history import HistoryStore
from station_finder.models import AnalyticsSummary, HistoryEntry, Station, StationDetail
from station_finder.service import StationFinder, StationFinderState

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(message)s')


@asynccontextmanager
async def lifespan(app: FastAPI) :
    """Open the upstream HTTP session and load the saved history on startup."""
    if getattr(app.state, "finder", None) is not None :
        yield
        return
    session = create_session()
    app.state.finder = StationFinder(GiosClient(session), HistoryStore(config.HISTORY_FILE))
    logging.info(f"Loaded {len(app.state.finder.history)} history entries from {config.HISTORY_FILE}")
    try :
        yield
    finally :
        await session.close()
        app.state.finder = None


app = FastAPI(
    title = "Station Finder - GIOŚ",
    description = "Air quality stations, station details, saved history and 24h analytics from GIOŚ.",
    version = "0.2",
    lifespan = lifespan
)


def get_finder(request: Request) -> StationFinder :
    return request.app.state.finder


@app.get("/stations", response_model=List[Station])
async def stations(request: Request):
    """Fetch all measurement stations."""
    try :
        return list(await get_finder(request).fetch_all_stations())
    except NetworkError as e :
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/stations/city/{city}", response_model=List[Station])
async def stations_by_city(city: str, request: Request):
    """Fetch stations located in the given city."""
    logging.info(f"Fetching stations for city: {city}")
    try :
        return list(await get_finder(request).fetch_stations_by_city(city))
    except NetworkError as e :
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/stations/nearest")
async def nearest_station(request: Request, address: str = Query(..., description="Free-form address, e.g. 'Wałcz ul. Południowa 10'")):
    """Geocode the address and return the closest station with its distance in km."""
    try :
        station, distance = await get_finder(request).fetch_nearest_station(address)
    except (GeocodeNotFound, NoCandidates) as e :
        raise HTTPException(status_code=404, detail=str(e))
    except NetworkError as e :
        raise HTTPException(status_code=502, detail=str(e))
    return {"station": station, "distance_km": distance}


@app.get("/stations/{station_id}/details", response_model=StationDetail)
async def station_details(station_id: int, request: Request):
    """Fetch sensors, measurements and air quality index of one station."""
    try :
        return await get_finder(request).fetch_station_details(station_id)
    except AggregationFailed as e :
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/history", response_model=List[HistoryEntry])
async def history(request: Request):
    """Saved stations, newest first."""
    return list(get_finder(request).history.entries)


@app.get("/history/city/{city}", response_model=List[HistoryEntry])
async def history_for_city(city: str, request: Request):
    """Latest saved snapshot of every station of a city."""
    return get_finder(request).stations_for_city(city)


@app.post("/history/{station_id}", response_model=List[HistoryEntry])
async def save_to_history(station_id: int, request: Request):
    """Save a station from the current list together with its displayed detail."""
    finder = get_finder(request)
    if not finder.save_station_to_history(station_id) :
        raise HTTPException(status_code=409, detail=f"Station {station_id} not saved (unknown, already saved or history not writable)")
    return list(finder.history.entries)


@app.post("/history/{index}/display", response_model=HistoryEntry)
async def display_from_history(index: int, request: Request):
    """Make a saved snapshot the current station detail."""
    entry = get_finder(request).display_station_from_history(index)
    if entry is None :
        raise HTTPException(status_code=404, detail=f"No history entry at index {index}")
    return entry


@app.delete("/history/{index}", response_model=List[HistoryEntry])
async def remove_from_history(index: int, request: Request):
    finder = get_finder(request)
    finder.remove_station_from_history(index)
    return list(finder.history.entries)


@app.delete("/history", response_model=List[HistoryEntry])
async def clear_history(request: Request):
    finder = get_finder(request)
    if not finder.clear_history() :
        raise HTTPException(status_code=500, detail="Failed to clear history")
    return []


@app.get("/analytics", response_model=AnalyticsSummary)
async def analytics(request: Request):
    """24h statistics and trends of the current station detail."""
    try :
        return get_finder(request).compute_analytics()
    except (NoHistoricalData, NoDataInWindow) as e :
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/history/{index}/analytics", response_model=AnalyticsSummary)
async def history_analytics(index: int, request: Request):
    """24h statistics of a saved snapshot, without fetching it again."""
    try :
        summary = get_finder(request).analyze_history_entry(index)
    except (NoHistoricalData, NoDataInWindow) as e :
        raise HTTPException(status_code=404, detail=str(e))
    if summary is None :
        raise HTTPException(status_code=404, detail=f"No history entry at index {index}")
    return summary


@app.get("/state", response_model=StationFinderState)
async def state(request: Request):
    return get_finder(request).snapshot()


@app.get("/events")
async def events(request: Request):
    """Server-sent change notifications."""
    finder = get_finder(request)
    queue = finder.subscribe()

    async def stream() :
        try :
            while not await request.is_disconnected() :
                event = await queue.get()
                yield f"event: {event.name}\ndata: {event.model_dump_json()}\n\n"
        finally :
            finder.unsubscribe(queue)

    return StreamingResponse(stream(), media_type="text/event-stream")


if __name__ == "__main__" :
    uvicorn.run(app, host = config.API_HOST, port = config.API_PORT, log_level=config.LOG_LEVEL.lower())
