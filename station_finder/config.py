# file: station_finder/config.py

import os
from dotenv import load_dotenv

load_dotenv()

GIOS_URL = os.getenv("GIOS_URL", "https://api.gios.gov.pl/pjp-api/rest")
NOMINATIM_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org")
GEOCODE_COUNTRY = os.getenv("GEOCODE_COUNTRY", "Polska")
USER_AGENT = os.getenv("USER_AGENT", "StationFinder/1.0")
HISTORY_FILE = os.getenv("HISTORY_FILE", "history.json")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
API_HOST = os.getenv("API_HOST", "0.0.0.0")

try :
    REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))
    API_PORT = int(os.getenv("API_PORT", "8000"))
except ValueError as e :
    raise ValueError(f"Invalid numeric configuration value: {e}")

# Validate environment variables
if not all([GIOS_URL, NOMINATIM_URL, HISTORY_FILE]) :
    raise ValueError("Missing required Station Finder environment variables")
