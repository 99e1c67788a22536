"""
Feature layers, tile geometry and input loading.

Feature layers are single bands of a raster sharing the tile's grid. The
validity of each cell comes from the dataset mask (nodata value, internal
mask band, NaN). A processing mask can be given as a raster or as GeoJSON
polygons, which are burned onto the tile grid.
"""

import json
import re
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.errors import NotGeoreferencedWarning
from rasterio.features import rasterize
from shapely.geometry import MultiPolygon, Polygon, mapping, shape

from .errors import ConfigurationError, RasterShapeMismatch


# Tiles without a transform are valid inputs and outputs
warnings.filterwarnings('ignore', category=NotGeoreferencedWarning)

_TILE_PATTERN = re.compile(r"X(\d{4})_Y(\d{4})")


# =============================================================================
# DATA MODEL
# =============================================================================


@dataclass
class Tile:
    """
    Grid of one processing unit.

    Attributes:
        height: Number of rows.
        width: Number of columns.
        tile_x: Tile column in the datacube.
        tile_y: Tile row in the datacube.
        transform: Affine transform of the grid (optional).
        crs: Coordinate reference system (optional).
    """
    height: int
    width: int
    tile_x: int = 0
    tile_y: int = 0
    transform: Optional[rasterio.Affine] = None
    crs: Optional[CRS] = None

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def ncells(self) -> int:
        return self.height * self.width

    @property
    def dirname(self) -> str:
        """Datacube directory name, e.g. 'X0012_Y0034'."""
        return f"X{self.tile_x:04d}_Y{self.tile_y:04d}"


@dataclass
class FeatureLayer:
    """
    One band of feature values.

    Attributes:
        values: 2-D array of feature values.
        validity: Boolean mask, True where the value is valid.
        nodata: Nodata sentinel of the values (None if the layer has none).
        name: Layer name, used for band descriptions and reports.
    """
    values: np.ndarray
    validity: Optional[np.ndarray] = None
    nodata: Optional[float] = None
    name: str = "feature"

    def __post_init__(self):
        self.values = np.asarray(self.values)
        if self.values.ndim != 2:
            raise ConfigurationError(
                f"Feature layer '{self.name}' must be 2-D, got {self.values.ndim}-D",
                field="values"
            )

        if self.validity is None:
            self.validity = self._derive_validity()
        else:
            self.validity = np.asarray(self.validity, dtype=bool)
            if self.validity.shape != self.values.shape:
                raise RasterShapeMismatch(f"{self.name}.validity", self.values.shape, self.validity.shape)

    def _derive_validity(self) -> np.ndarray:
        validity = np.ones(self.values.shape, dtype=bool)
        if self.nodata is not None:
            validity &= self.values != self.nodata
        if np.issubdtype(self.values.dtype, np.floating):
            validity &= np.isfinite(self.values)
        return validity

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape


def check_layers(layers: Sequence[FeatureLayer]) -> Tuple[int, int]:
    """
    Ensure all layers share one grid.

    Returns:
        Tuple[int, int]: Common (height, width).

    Raises:
        ConfigurationError: If no layer is given or shapes differ.
    """
    if not layers:
        raise ConfigurationError("No feature layer given", field="layers")

    expected = layers[0].shape
    for layer in layers[1:]:
        if layer.shape != expected:
            raise RasterShapeMismatch(layer.name, expected, layer.shape)
    return expected


# =============================================================================
# LOADING
# =============================================================================


def _tile_from_path(path: Path) -> Tuple[int, int]:
    for part in reversed(path.parts):
        match = _TILE_PATTERN.search(part)
        if match:
            return int(match.group(1)), int(match.group(2))
    return 0, 0


def load_feature_layers(
    path: Union[str, Path],
    bands: Optional[Sequence[int]] = None
) -> Tuple[List[FeatureLayer], Tile]:
    """
    Read feature layers from a raster file.

    Args:
        path: Raster path (any format rasterio can open).
        bands: 1-based band indexes to read (default: all bands).

    Returns:
        Tuple[List[FeatureLayer], Tile]: One layer per band and the tile grid.
        The tile position is parsed from an 'X0000_Y0000' path component.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"feature file not found: {path}")

    print(f"[INFO] Loading feature raster: {path}")
    with rasterio.open(path) as src:
        bands = list(bands) if bands is not None else list(range(1, src.count + 1))
        tile_x, tile_y = _tile_from_path(path)
        tile = Tile(src.height, src.width, tile_x, tile_y, src.transform, src.crs)

        layers = []
        for b in bands:
            values = src.read(b)
            validity = src.read_masks(b) > 0
            if np.issubdtype(values.dtype, np.floating):
                validity &= np.isfinite(values)

            name = src.descriptions[b - 1] or f"band{b}"
            nodata = src.nodatavals[b - 1]
            layers.append(FeatureLayer(values, validity, nodata, name))

    print(f"[INFO] Loaded {len(layers)} feature layers: shape={tile.shape}")
    return layers, tile


def _load_polygons(path: Path) -> List[Polygon]:
    with open(path, 'r') as f:
        geojson_data = json.load(f)

    if geojson_data.get('type') == 'FeatureCollection':
        geometries = [feat.get('geometry') for feat in geojson_data.get('features', [])]
    elif geojson_data.get('type') == 'Feature':
        geometries = [geojson_data.get('geometry')]
    else:
        geometries = [geojson_data]

    polygons = []
    for geom in geometries:
        if geom is None:
            continue
        poly = shape(geom)
        if isinstance(poly, Polygon) and poly.is_valid:
            polygons.append(poly)
        elif isinstance(poly, MultiPolygon):
            polygons.extend(p for p in poly.geoms if p.is_valid)
        else:
            print(f"[WARNING] Skipping non-polygon or invalid geometry: {poly.geom_type}")

    return polygons


def load_processing_mask(path: Union[str, Path], tile: Tile) -> np.ndarray:
    """
    Load a processing mask onto the tile grid.

    Args:
        path: Raster mask (nonzero = process) or GeoJSON polygons
              (.geojson/.json; covered cells are processed).
        tile: Target grid. Polygons require ``tile.transform``.

    Returns:
        np.ndarray: Boolean mask, True where cells are processed.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If polygons are given without a grid transform.
        RasterShapeMismatch: If a raster mask does not match the tile.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"mask file not found: {path}")

    if path.suffix.lower() in ('.geojson', '.json'):
        if tile.transform is None:
            raise ConfigurationError(
                "Polygon masks need a georeferenced tile (transform)", field="mask"
            )

        polygons = _load_polygons(path)
        print(f"[INFO] Rasterizing {len(polygons)} mask polygons")
        if not polygons:
            return np.zeros(tile.shape, dtype=bool)

        burned = rasterize(
            [(mapping(p), 1) for p in polygons],
            out_shape=tile.shape,
            transform=tile.transform,
            fill=0,
            dtype='uint8'
        )
        return burned > 0

    with rasterio.open(path) as src:
        mask = src.read(1) != 0
    if mask.shape != tile.shape:
        raise RasterShapeMismatch("processing_mask", tile.shape, mask.shape)
    return mask
