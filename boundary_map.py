# boundary_map.py
import numpy as np
import pandas as pd
from pyproj import CRS, Transformer
from shapely.geometry import Point
from shapely.strtree import STRtree

WGS84 = 'EPSG:4326'


class BoundaryMap:
    """
    An ordered, read-only set of named polygons for one administrative level.

    Points are always given as WGS84 latitude/longitude and reprojected into
    the map's own CRS before testing. A point on a polygon edge counts as
    inside. If several polygons cover a point (shared edges, overlaps), the
    one declared first wins.

    The spatial index and the CRS transformer are built lazily and left out
    of pickles, so a map can be shipped to worker processes as is.
    """

    def __init__(self, level, names, geometries, crs=WGS84, name_col=None):
        names = tuple(names)
        geometries = tuple(geometries)
        if len(names) != len(geometries):
            raise ValueError(f"Boundary map '{level}' has {len(names)} names but {len(geometries)} geometries.")
        if crs is None:
            print(f"Warning: Boundary map '{level}' has no CRS, assuming {WGS84}.")
            crs = WGS84

        self._level = level
        self._names = names
        self._geometries = geometries
        self._crs = CRS.from_user_input(crs)
        self._name_col = name_col
        self._needs_transform = self._crs != CRS.from_user_input(WGS84)
        self._tree = None
        self._transformer = None

    @classmethod
    def from_geodataframe(cls, gdf, level, name_col):
        """Builds a map from a GeoDataFrame, keeping its row order."""
        if name_col not in gdf.columns:
            raise ValueError(f"Name column '{name_col}' not found for boundary map '{level}'. Available: {list(gdf.columns)}")

        gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
        names = [None if pd.isna(value) else str(value) for value in gdf[name_col]]
        return cls(level, names, list(gdf.geometry), crs=gdf.crs, name_col=name_col)

    @property
    def level(self):
        return self._level

    @property
    def name_col(self):
        return self._name_col

    @property
    def crs(self):
        return self._crs

    @property
    def names(self):
        return self._names

    def __len__(self):
        return len(self._geometries)

    def __repr__(self):
        return f"BoundaryMap(level={self._level!r}, polygons={len(self)}, crs={self._crs.to_string()!r})"

    # --- Pickling: drop the lazily built helpers ---
    def __getstate__(self):
        state = self.__dict__.copy()
        state['_tree'] = None
        state['_transformer'] = None
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)

    def _get_tree(self):
        if self._tree is None:
            self._tree = STRtree(self._geometries)
        return self._tree

    def project(self, lat, lon):
        """Returns (x, y) of a WGS84 point in this map's CRS."""
        if not self._needs_transform:
            return lon, lat
        if self._transformer is None:
            self._transformer = Transformer.from_crs(WGS84, self._crs, always_xy=True)
        return self._transformer.transform(lon, lat)

    def lookup(self, lat, lon):
        """
        Finds the name of the polygon containing a point.

        Args:
            lat (float): WGS84 latitude.
            lon (float): WGS84 longitude.

        Returns:
            str or None: Name of the first declared polygon covering the
                         point, or None if no polygon does.
        """
        if not self._geometries:
            return None
        x, y = self.project(lat, lon)
        if not (np.isfinite(x) and np.isfinite(y)):
            # Outside the projection's domain, so outside every polygon
            return None

        hits = self._get_tree().query(Point(x, y), predicate='covered_by')
        if len(hits) == 0:
            return None
        return self._names[int(np.min(hits))]
