# data_loader.py
import geopandas as gpd
import pandas as pd
import os
import config # Import config variables
from boundary_map import BoundaryMap

REQUIRED_COLS = ['latitude', 'longitude']


class InvalidCoordinateError(ValueError):
    """Raised for a latitude/longitude that is non-numeric or out of range."""


# --- Coordinate Validation ---

def validate_coordinate(lat, lon):
    """Returns (lat, lon) as floats, or raises InvalidCoordinateError."""
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        raise InvalidCoordinateError(f"Non-numeric coordinate ({lat!r}, {lon!r})")
    # NaN fails both comparisons
    if not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
        raise InvalidCoordinateError(f"Coordinate out of range (lat={lat}, lon={lon})")
    return lat, lon

def valid_coordinate_mask(df):
    """Boolean Series, True where both coordinates are numeric and in range."""
    lat = pd.to_numeric(df['latitude'], errors='coerce')
    lon = pd.to_numeric(df['longitude'], errors='coerce')
    return lat.between(-90, 90) & lon.between(-180, 180)

# --- Helper Function ---
def _load_shapefile_helper(filepath, usecols=None, bbox=None, to_wgs84=True):
    """Internal helper to load a shapefile with pyogrio and settle its CRS."""
    if not os.path.exists(filepath):
         raise FileNotFoundError(f"Shapefile not found: {filepath}")
    gdf = gpd.read_file(filepath, engine='pyogrio', columns=usecols, bbox=bbox)

    if gdf.crs is None:
        print(f"Warning: {os.path.basename(filepath)} declares no CRS, assuming EPSG:4326.")
        gdf = gdf.set_crs('EPSG:4326')
    elif to_wgs84 and gdf.crs != 'EPSG:4326':
        gdf = gdf.to_crs('EPSG:4326')
    return gdf

# --- Main Data Loading Functions ---

def load_observations(filepath=None, usecols=None, on_invalid=None, nrows=None):
    """
    Loads wildfire detections from CSV and checks their coordinates.

    Args:
        filepath (str): CSV path, defaults to config.INPUT_FILE.
        usecols (list): Columns to keep if present, defaults to config.USECOLS.
                        'latitude' and 'longitude' are always kept.
        on_invalid (str): 'skip' keeps invalid rows (every lookup flags them
                          as invalid_coordinate), 'reject' raises for the
                          whole batch. Defaults to config.ON_INVALID_COORDINATE.
        nrows (int): Optional row limit.

    Returns:
        pandas.DataFrame: One row per observation, latitude/longitude numeric
                          (non-numeric values become NaN).

    Raises:
        FileNotFoundError: If the CSV does not exist.
        ValueError: If a required column is missing or on_invalid is unknown.
        InvalidCoordinateError: If on_invalid is 'reject' and a row is invalid.
    """
    filepath = filepath or config.INPUT_FILE
    usecols = usecols or config.USECOLS
    on_invalid = on_invalid or config.ON_INVALID_COORDINATE
    if on_invalid not in ('skip', 'reject'):
        raise ValueError(f"on_invalid must be 'skip' or 'reject', got '{on_invalid}'")
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Input file not found: {filepath}")

    print(f"Loading observations from {filepath}...")
    header = pd.read_csv(filepath, nrows=0, encoding='utf-8').columns
    missing = [col for col in REQUIRED_COLS if col not in header]
    if missing:
        raise ValueError(f"Input file '{filepath}' is missing required columns: {missing}")

    # Keep the file's column order, drop requested columns it doesn't have
    wanted = set(REQUIRED_COLS) | set(usecols)
    cols = [col for col in header if col in wanted]
    observations = pd.read_csv(filepath, usecols=cols, nrows=nrows, encoding='utf-8')

    for col in REQUIRED_COLS:
        observations[col] = pd.to_numeric(observations[col], errors='coerce')

    invalid = ~valid_coordinate_mask(observations)
    if invalid.any():
        bad_rows = observations.index[invalid].tolist()
        if on_invalid == 'reject':
            raise InvalidCoordinateError(f"{len(bad_rows)} rows have invalid coordinates (first rows: {bad_rows[:10]})")
        print(f"Warning: {len(bad_rows)} rows have invalid coordinates and will be flagged (first rows: {bad_rows[:10]}).")

    print(f"Loaded {len(observations)} observations.")
    return observations

def load_boundary_map(definition, to_wgs84=False):
    """
    Loads one boundary map from a definition dict (see config.LOW_RES_MAPS).

    With to_wgs84=False the map keeps its native CRS and points are
    reprojected into it at lookup time.
    """
    level = definition['level']
    print(f"Loading {level} boundaries from {definition['file']}...")
    gdf = _load_shapefile_helper(definition['file'], to_wgs84=to_wgs84)

    query = definition.get('query')
    if query:
        gdf = gdf.query(query)

    boundary_map = BoundaryMap.from_geodataframe(gdf, level, definition['name_col'])
    print(f"Loaded {len(boundary_map)} {level} polygons (CRS: {boundary_map.crs.to_string()}).")
    return boundary_map

def load_low_resolution_maps(definitions=None):
    """Loads the low-detail Natural Earth maps, all in EPSG:4326."""
    definitions = config.LOW_RES_MAPS if definitions is None else definitions
    return [load_boundary_map(definition, to_wgs84=True) for definition in definitions]

def load_custom_maps(definitions=None):
    """Loads the externally supplied maps in their native CRS, in declared order."""
    definitions = config.CUSTOM_MAPS if definitions is None else definitions
    return [load_boundary_map(definition, to_wgs84=False) for definition in definitions]
