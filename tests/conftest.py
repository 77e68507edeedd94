import numpy as np
import pytest
import rioxarray  # noqa: F401
import xarray as xr
from shapely.geometry import box

from nlcd.raster import RasterSubset

CELL_SIZE = 30.0
NODATA = 250

# Land cover rows, top to bottom. Cell (row, col) has its center at
# x = 15 + 30 * col, y = 75 - 30 * row.
#   y=75: 11 11 41 41 41
#   y=45: 21 21 250 82 82
#   y=15: 250 250 250 250 250
LAND_COVER = np.array(
    [
        [11, 11, 41, 41, 41],
        [21, 21, NODATA, 82, 82],
        [NODATA] * 5,
    ],
    dtype='uint8',
)


def _land_cover_array(
    values, *, x0=0.0, y0=None, cell_size=CELL_SIZE, nodata=NODATA, ascending_y=False
):
    """Build a projected land cover DataArray with cell-center ``x``/``y`` coordinates.

    ``x0`` is the left edge and ``y0`` the top edge of the grid.
    """
    values = np.asarray(values)
    rows, cols = values.shape
    if y0 is None:
        y0 = rows * cell_size
    xs = x0 + cell_size * (np.arange(cols) + 0.5)
    ys = y0 - cell_size * (np.arange(rows) + 0.5)
    da = xr.DataArray(values, dims=('y', 'x'), coords={'y': ys, 'x': xs}, name='land_cover')
    if ascending_y:
        da = da.isel(y=slice(None, None, -1))
    da = da.rio.write_crs('EPSG:5070')
    if nodata is not None:
        da = da.rio.write_nodata(nodata)
    return da


@pytest.fixture
def make_land_cover():
    """Factory fixture building land cover grids, see ``_land_cover_array``."""
    return _land_cover_array


@pytest.fixture
def land_cover():
    return _land_cover_array(LAND_COVER)


@pytest.fixture
def subset(land_cover):
    return RasterSubset(data=land_cover, nodata=NODATA)


@pytest.fixture
def write_land_cover(tmp_path):
    """Factory fixture writing a land cover grid to a GeoTIFF in ``tmp_path``."""

    def _write(values=LAND_COVER, name='land_cover.tif', **kwargs):
        da = _land_cover_array(values, **kwargs)
        path = tmp_path / name
        da.rio.to_raster(path)
        return path

    return _write


@pytest.fixture
def top_row():
    """Polygon covering the centers of the first raster row."""
    return box(0, 60, 150, 90)


@pytest.fixture
def middle_row():
    return box(0, 30, 150, 60)
