import os
from pathlib import Path
from dotenv import load_dotenv

# Always load .env from the package folder
load_dotenv(Path(__file__).resolve().parent / ".env")

TOMTOM_API_KEY = os.getenv("TOMTOM_API_KEY", "").strip()
TOMTOM_BASE_URL = os.getenv("TOMTOM_BASE_URL", "https://api.tomtom.com")

OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY", "").strip()
OPENWEATHER_BASE_URL = os.getenv("OPENWEATHER_BASE_URL", "https://api.openweathermap.org")

# Incident-report store. Without credentials an in-memory store is used.
SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip().rstrip("/")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
REPORTS_TABLE = os.getenv("REPORTS_TABLE", "reports")

PROVIDER_TIMEOUT_S = float(os.getenv("PROVIDER_TIMEOUT_S", "8.0"))
SEGMENT_CONCURRENCY = int(os.getenv("SEGMENT_CONCURRENCY", "10"))
MAX_SAMPLED_SEGMENTS = int(os.getenv("MAX_SAMPLED_SEGMENTS", "50"))
ROUTE_ALTERNATIVES = int(os.getenv("ROUTE_ALTERNATIVES", "3"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    ).split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
