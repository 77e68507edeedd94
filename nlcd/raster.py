import dataclasses

import numpy as np
import rioxarray
import shapely
import xarray as xr

Extent = tuple[float, float, float, float]


class RasterExtentError(ValueError):
    """Raised when a requested extent does not overlap the raster."""


def crop_to_extent(da: xr.DataArray, extent: Extent) -> xr.DataArray:
    """
    Select the cells of a 2-D raster whose centers lie within an extent.

    Parameters
    ----------
    da : xr.DataArray
        Raster with ``x`` and ``y`` cell-center coordinates. Either axis may be
        ascending or descending.
    extent : tuple
        Bounding box in the raster CRS in the form: (x_min, y_min, x_max, y_max)

    Returns
    -------
    xr.DataArray
        Subset of ``da``. Zero sized along x and/or y when nothing overlaps.
    """
    x_min, y_min, x_max, y_max = extent
    xs = np.asarray(da['x'].values)
    ys = np.asarray(da['y'].values)

    # coordinates are monotonic, so the selected positions are contiguous
    x_idx = np.flatnonzero((xs >= x_min) & (xs <= x_max))
    y_idx = np.flatnonzero((ys >= y_min) & (ys <= y_max))
    if x_idx.size == 0 or y_idx.size == 0:
        return da.isel(x=slice(0, 0), y=slice(0, 0))
    return da.isel(x=slice(x_idx[0], x_idx[-1] + 1), y=slice(y_idx[0], y_idx[-1] + 1))


@dataclasses.dataclass(frozen=True)
class RasterSubset:
    """In-memory window of the land cover raster shared read-only by workers."""

    data: xr.DataArray
    nodata: int | float | None = None

    @property
    def shape(self) -> tuple[int, int]:
        return (self.data.sizes['y'], self.data.sizes['x'])

    @property
    def is_empty(self) -> bool:
        return self.data.size == 0

    @property
    def bounds(self) -> Extent:
        """Extent of the cell centers as (x_min, y_min, x_max, y_max)."""
        if self.is_empty:
            raise RasterExtentError('An empty raster subset has no bounds')
        xs = self.data['x'].values
        ys = self.data['y'].values
        return (float(xs.min()), float(ys.min()), float(xs.max()), float(ys.max()))

    def crop(self, extent: Extent) -> 'RasterSubset':
        return RasterSubset(data=crop_to_extent(self.data, extent), nodata=self.nodata)

    def valid(self, values: np.ndarray) -> np.ndarray:
        """Boolean mask of the entries of ``values`` that are not no-data."""
        mask = np.ones(values.shape, dtype=bool)
        if np.issubdtype(values.dtype, np.floating):
            mask &= ~np.isnan(values)
        if self.nodata is not None and not np.isnan(self.nodata):
            mask &= values != self.nodata
        return mask


def masked_values(subset: RasterSubset, geometry) -> np.ndarray:
    """
    Category values of the cells whose center falls inside ``geometry``.

    Cells on the polygon boundary are excluded, as are no-data cells.

    Parameters
    ----------
    subset : RasterSubset
        Raster window covering the geometry.
    geometry : shapely.Geometry
        Polygon in the raster CRS.

    Returns
    -------
    np.ndarray
        1-D array of category codes, one entry per cell.
    """
    da = subset.data
    if subset.is_empty or geometry.is_empty:
        return np.empty(0, dtype=da.dtype)
    da = da.transpose('y', 'x')
    xx, yy = np.meshgrid(da['x'].values, da['y'].values)
    inside = shapely.contains_xy(geometry, xx, yy)
    values = np.asarray(da.values)[inside]
    return values[subset.valid(values)]


class NLCDRaster:
    """Lazy, tiled access to a classified land cover raster.

    The file is opened with rioxarray on first use and backed by dask chunks, so
    only the tiles touched by :meth:`crop` are ever read.
    """

    def __init__(self, path: str, *, nodata: int | None = None, chunk_size: int = 4096):
        self.path = str(path)
        self.chunk_size = chunk_size
        self._nodata_override = nodata
        self._da: xr.DataArray | None = None

    @property
    def data(self) -> xr.DataArray:
        if self._da is None:
            da = rioxarray.open_rasterio(
                self.path,
                chunks={'x': self.chunk_size, 'y': self.chunk_size},
                masked=False,
            )
            if 'band' in da.dims:
                da = da.isel(band=0, drop=True)
            self._da = da.transpose('y', 'x')
        return self._da

    @property
    def crs(self):
        return self.data.rio.crs

    @property
    def nodata(self) -> int | float | None:
        if self._nodata_override is not None:
            return self._nodata_override
        return self.data.rio.nodata

    def crop(self, extent: Extent) -> RasterSubset:
        """Load the cells covering ``extent`` into memory.

        Raises
        ------
        RasterExtentError
            If the extent lies entirely outside the raster.
        """
        da = crop_to_extent(self.data, extent)
        if da.size == 0:
            raise RasterExtentError(f'Extent {extent} does not overlap raster {self.path}')
        return RasterSubset(data=da.load(), nodata=self.nodata)

    def values_at(self, subset: RasterSubset, geometry) -> np.ndarray:
        return masked_values(subset, geometry)
