import os

ROOT_DIR = os.path.dirname(os.path.abspath(__file__))

QDRANT_LOCAL_PATH = os.environ.get(
    "ESTATE_QDRANT_PATH",
    os.path.join(ROOT_DIR, "artifacts", "qdrant_local"),
)
QDRANT_URL = os.environ.get("ESTATE_QDRANT_URL", "").strip()
QDRANT_COLLECTION = os.environ.get("ESTATE_QDRANT_COLLECTION", "estate_properties")
QDRANT_SCROLL_BATCH = int(os.environ.get("ESTATE_QDRANT_SCROLL_BATCH", "512"))

# listings returned directly before refinements are required
RESULT_CAP = int(os.environ.get("ESTATE_RESULT_CAP", "3"))

CATEGORICAL_MIN_SIMILARITY = float(os.environ.get("ESTATE_CATEGORICAL_MIN_SIMILARITY", "0.6"))
STREET_MIN_SIMILARITY = float(os.environ.get("ESTATE_STREET_MIN_SIMILARITY", "0.6"))
# exclusive threshold for matching free-text locations against sampled addresses
GENERAL_LOCATION_MIN_SIMILARITY = float(os.environ.get("ESTATE_GENERAL_LOCATION_MIN_SIMILARITY", "0.7"))
LOCATION_SAMPLE_LIMIT = int(os.environ.get("ESTATE_LOCATION_SAMPLE_LIMIT", "1000"))
STREET_REFINEMENT_LIMIT = int(os.environ.get("ESTATE_STREET_REFINEMENT_LIMIT", "15"))
STREET_PHONETIC_SCORE = 0.8

DEFAULT_RADIUS_KM = float(os.environ.get("ESTATE_DEFAULT_RADIUS_KM", "25"))

# min_lat,min_lon,max_lat,max_lon (Great Britain + Northern Ireland)
GEO_BOUNDS = os.environ.get("ESTATE_GEO_BOUNDS", "49.8,-8.7,60.9,1.8")

GOOGLE_MAPS_API_KEY = os.environ.get("GOOGLE_MAPS_API_KEY", "")
GEOCODE_URL = os.environ.get(
    "ESTATE_GEOCODE_URL",
    "https://maps.googleapis.com/maps/api/geocode/json",
)
GEOCODE_TIMEOUT_SEC = float(os.environ.get("ESTATE_GEOCODE_TIMEOUT_SEC", "5"))
GEOCODE_REGION = os.environ.get("ESTATE_GEOCODE_REGION", "gb").strip().lower()

DEFAULT_ORDER_BY = os.environ.get("ESTATE_DEFAULT_ORDER_BY", "added_on").strip().lower()
if DEFAULT_ORDER_BY not in {"added_on", "scraped_at"}:
    DEFAULT_ORDER_BY = "added_on"

QUERY_LOG_PATH = os.environ.get(
    "ESTATE_QUERY_LOG_PATH",
    os.path.join(ROOT_DIR, "artifacts", "debug", "query_log.jsonl"),
)
ENABLE_QUERY_LOG = os.environ.get("ESTATE_QUERY_LOG", "0") == "1"
