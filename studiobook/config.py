import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./studiobook.db")

# Frontend base URL used in notification links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Google Maps Platform (Geocoding + Distance Matrix)
# Prefer a server-only key; referrer-restricted browser keys are rejected by the web services.
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY") or os.getenv("GOOGLE_GEOCODING_API_KEY")

# OpenStreetMap Nominatim, used when no Google key is configured
NOMINATIM_BASE_URL = os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org").rstrip(
    "/"
)
# Required by Nominatim policy (include a way to contact you)
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT", "StudioBook/1.0 (support@studiobook.app)")

# Open-Meteo daily sunrise/sunset data (free for non-commercial use)
OPEN_METEO_BASE_URL = os.getenv("OPEN_METEO_BASE_URL", "https://api.open-meteo.com").rstrip("/")

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "8.0"))
GEOCODE_CACHE_SECONDS = int(os.getenv("GEOCODE_CACHE_SECONDS", "86400"))

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "StudioBook <bookings@studiobook.app>")

# Scheduling engine
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Australia/Sydney")
# Initial value of Tenant.scheduling_enabled for new tenants
SCHEDULING_ENABLED_DEFAULT = os.getenv("SCHEDULING_ENABLED_DEFAULT", "false").lower() == "true"
# Upper bound on a single notification dispatch so it never holds the response
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))

# Sunrise/dusk placeholder slots: generated for this many days when business hours are saved
PLACEHOLDER_DAYS = int(os.getenv("PLACEHOLDER_DAYS", "30"))
# Sun data location for tenants without base coordinates
STUDIO_BASE_LATITUDE = float(os.getenv("STUDIO_BASE_LATITUDE", "-28.8333"))
STUDIO_BASE_LONGITUDE = float(os.getenv("STUDIO_BASE_LONGITUDE", "153.4333"))
