# config.py
import os

# --- File Paths ---
# Directory with the low-resolution Natural Earth shapefiles
# Assumes files like 'ne_110m_admin_0_countries.shp' sit directly inside it
DATA_DIR = 'natural_earth_data/'
# Directory with the externally supplied higher-resolution boundary shapefiles
SHAPEFILE_DIR = 'shapefiles/'

# Input CSV of wildfire sensor detections (FIRMS-style export)
INPUT_FILENAME = "firms_sample.csv"
INPUT_FILE = os.path.join("input", INPUT_FILENAME)
USECOLS = ['latitude', 'longitude', 'acq_date', 'brightness', 'frp']

# One CSV per method is written here, e.g. results/photon_firms_sample.csv
OUTPUT_DIR = "results"

# --- Input Validation ---
# 'skip': keep invalid rows in the table, flagged and skipped by every lookup
# 'reject': refuse the whole batch
ON_INVALID_COORDINATE = 'skip'

# --- Report Parameters ---
# The remote API is slow (one round trip per row), so only a sample is sent
REMOTE_SAMPLE_SIZE = 25
# Rows shown in the side-by-side comparison table
COMPARISON_ROWS = 10

# Marker for "no polygon contains this point" in the low-resolution lookup
NOT_FOUND = "not found"

# --- Photon (hosted geocoder) ---
PHOTON_DOMAIN = 'photon.komoot.io'
PHOTON_SCHEME = 'https'
PHOTON_USER_AGENT = "wildfire-geocode-compare/0.1"
PHOTON_TIMEOUT = 10          # seconds per request
PHOTON_MIN_DELAY = 0.2       # seconds between requests, be nice to the free API
PHOTON_MAX_RETRIES = 3
PHOTON_BACKOFF = 1.0         # first retry wait in seconds, doubled each attempt
PHOTON_BATCH_TIMEOUT = 300.0 # seconds for a whole batch, None disables

# --- Parallel Lookup ---
# Cores kept free for the coordinating process
RESERVED_CORES = 1

# --- Boundary Map Definitions ---
# Each entry: administrative level, shapefile path, attribute holding the name.
# 'query' is an optional pandas query applied before building the map.
# Low-resolution maps are always reprojected to EPSG:4326 on load.
LOW_RES_MAPS = [
    {'level': 'country', 'file': os.path.join(DATA_DIR, 'ne_110m_admin_0_countries.shp'), 'name_col': 'NAME'},
    {'level': 'state', 'file': os.path.join(DATA_DIR, 'ne_110m_admin_1_states_provinces.shp'), 'name_col': 'name'},
    {'level': 'county', 'file': os.path.join(DATA_DIR, 'ne_10m_admin_2_counties.shp'), 'name_col': 'NAME'},
    {'level': 'island', 'file': os.path.join(DATA_DIR, 'ne_10m_geography_regions_polys.shp'), 'name_col': 'name',
     'query': "featurecla == 'Island'"},
]

# Custom maps keep their native CRS; points are reprojected into it per lookup.
# Order matters: country, then state/province, then local government area.
CUSTOM_MAPS = [
    {'level': 'country', 'file': os.path.join(SHAPEFILE_DIR, 'AUS_2021_AUST_GDA2020.shp'), 'name_col': 'AUS_NAME21'},
    {'level': 'state', 'file': os.path.join(SHAPEFILE_DIR, 'STE_2021_AUST_GDA2020.shp'), 'name_col': 'STE_NAME21'},
    {'level': 'lga', 'file': os.path.join(SHAPEFILE_DIR, 'LGA_2021_AUST_GDA2020.shp'), 'name_col': 'LGA_NAME21'},
]


# Ensure data directories exist (optional check)
if not os.path.isdir(DATA_DIR):
    print(f"Warning: Data directory '{DATA_DIR}' not found. Please ensure Natural Earth data is downloaded and unzipped there.")
if not os.path.isdir(SHAPEFILE_DIR):
    print(f"Warning: Shapefile directory '{SHAPEFILE_DIR}' not found. The custom boundary lookup needs its shapefiles there.")
