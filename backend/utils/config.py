"""Configuration from environment."""
import os

PORT = int(os.environ.get("PORT", "8001"))

# When TESTING=true, use test DB URL so tests never touch production.
if os.environ.get("TESTING") == "true":
    DATABASE_URL = os.environ.get("TESTING_DATABASE_URL", "sqlite:///:memory:")
else:
    DATABASE_URL = os.environ.get(
        "DATABASE_URL",
        "sqlite:///./saved_locations.db",
    )

# Saved locations per owner.
MAX_SAVED_LOCATIONS = int(os.environ.get("MAX_SAVED_LOCATIONS", "3"))

# "promote_earliest" | "reoffer"
DEFAULT_REPAIR_POLICY = os.environ.get("DEFAULT_REPAIR_POLICY", "promote_earliest")

# "keep" | "promote_earliest"
DELETE_DEFAULT_POLICY = os.environ.get("DELETE_DEFAULT_POLICY", "keep")

GEOCODER_URL = os.environ.get("GEOCODER_URL", "https://nominatim.openstreetmap.org")
GEOCODER_TIMEOUT_S = float(os.environ.get("GEOCODER_TIMEOUT_S", "10"))
GEOCODER_USER_AGENT = os.environ.get(
    "GEOCODER_USER_AGENT",
    "saved-locations/0.1 (reverse geocoding for saved ride locations)",
)

# "en" | "ar"
DEFAULT_LANGUAGE = os.environ.get("DEFAULT_LANGUAGE", "en")
