import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from boundary_map import BoundaryMap

SYDNEY = (-33.8688, 151.2093)
MELBOURNE = (-37.8136, 144.9631)
AUCKLAND = (-36.8485, 174.7633)
PERTH = (-31.9523, 115.8613)
NORTH_POLE = (90.0, 0.0)


@pytest.fixture
def country_map():
    # Rough bounding boxes, good enough for containment checks
    return BoundaryMap(
        'country',
        ['Australia', 'New Zealand'],
        [box(113.0, -44.0, 154.0, -10.0), box(166.0, -47.5, 179.0, -34.0)],
    )


@pytest.fixture
def state_map():
    # The boxes overlap between lat -37.5 and -34, New South Wales is declared first
    return BoundaryMap(
        'state',
        ['New South Wales', 'Victoria'],
        [box(141.0, -37.5, 154.0, -28.0), box(141.0, -39.2, 150.0, -34.0)],
    )


@pytest.fixture
def lga_gdf():
    gdf = gpd.GeoDataFrame(
        {'LGA_NAME': ['Sydney', 'Melbourne']},
        geometry=[box(150.9, -34.0, 151.35, -33.7), box(144.8, -37.9, 145.1, -37.7)],
        crs='EPSG:4326',
    )
    return gdf.to_crs('EPSG:3857')


@pytest.fixture
def lga_map(lga_gdf):
    return BoundaryMap.from_geodataframe(lga_gdf, 'lga', 'LGA_NAME')


@pytest.fixture
def observations():
    lats, lons = zip(SYDNEY, MELBOURNE, AUCKLAND, PERTH, NORTH_POLE)
    return pd.DataFrame({
        'latitude': lats,
        'longitude': lons,
        'acq_date': ['2019-12-30', '2019-12-30', '2019-12-31', '2020-01-01', '2020-01-01'],
        'brightness': [330.1, 312.4, 301.0, 345.9, 299.2],
    })
