"""Per-polygon categorical histograms."""

import typing

import numpy as np

from nlcd.raster import RasterSubset, masked_values

_POLYGONAL = ('Polygon', 'MultiPolygon')


class AggregationError(ValueError):
    """Raised when a single polygon cannot be aggregated."""


class HistogramRecord(typing.NamedTuple):
    block: str
    category: int
    count: int


def cell_histogram(subset: RasterSubset, geometry) -> dict[int, int]:
    """
    Count the raster cells of each category inside a polygon.

    The subset is first cropped to the polygon's bounding box so that only
    nearby cells are tested.

    Parameters
    ----------
    subset : RasterSubset
        Raster window covering (at least part of) the polygon.
    geometry : shapely.Polygon | shapely.MultiPolygon
        Polygon in the raster CRS.

    Returns
    -------
    dict[int, int]
        Category code to cell count, sorted by code. Empty when no valid cell
        center lies inside the polygon.

    Raises
    ------
    AggregationError
        If the geometry is missing or not polygonal.
    """
    if geometry is None:
        raise AggregationError('Geometry is missing')
    if geometry.is_empty:
        return {}
    if geometry.geom_type not in _POLYGONAL:
        raise AggregationError(f'Expected a polygonal geometry, got {geometry.geom_type}')

    window = subset.crop(geometry.bounds)
    values = masked_values(window, geometry)
    if values.size == 0:
        return {}
    codes, counts = np.unique(values, return_counts=True)
    return {int(code): int(count) for code, count in zip(codes, counts)}


def aggregate_polygon(block_id: str, geometry, subset: RasterSubset) -> list[HistogramRecord]:
    """Histogram of one block expressed as (block, category, count) records."""
    histogram = cell_histogram(subset, geometry)
    return [HistogramRecord(block_id, code, count) for code, count in histogram.items()]
