# === Mapping Dictionaries ===

# Administrative levels produced by each method, in output column order
PHOTON_LEVELS = ['country', 'state', 'county', 'city']
LOW_RES_LEVELS = ['country', 'state', 'county', 'island']
CUSTOM_LEVELS = ['country', 'state', 'lga']

# PHOTON_LEVEL_FIELDS: annotation level -> Photon feature properties, first non-empty wins
PHOTON_LEVEL_FIELDS = {
    "country": ["country"],
    "state": ["state"],
    "county": ["county", "district"],
    "city": ["city", "locality"],
}

# --- Row Status Values ---
STATUS_OK = "ok"
STATUS_LOOKUP_MISS = "lookup_miss"
STATUS_INVALID_COORDINATE = "invalid_coordinate"
STATUS_REMOTE_SERVICE_FAILURE = "remote_service_failure"
STATUS_WORKER_FAILURE = "worker_failure"

# Fixed order used for summary tables
STATUSES = [
    STATUS_OK,
    STATUS_LOOKUP_MISS,
    STATUS_INVALID_COORDINATE,
    STATUS_REMOTE_SERVICE_FAILURE,
    STATUS_WORKER_FAILURE,
]

# METHOD_LABELS: method key -> human readable name for the report
METHOD_LABELS = {
    "photon": "Photon (hosted API)",
    "low_res": "Low-resolution boundaries",
    "custom": "Custom shapefiles (parallel)",
}
