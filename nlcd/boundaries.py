"""Census block boundaries, one state at a time.

By default blocks are read from the Census TIGER/Line 2020 tabulation block
shapefiles. Any path or URL readable by geopandas works as long as it carries a
``{fips}`` placeholder; GeoParquet sources are read with ``read_parquet``.

Reference:
https://www.census.gov/geographies/mapping-files/time-series/geo/tiger-line-file.html
"""

from collections.abc import Iterator

import geopandas as gpd

from nlcd.config import TIGER_BLOCKS_TEMPLATE
from nlcd.console import console


class BoundarySourceError(RuntimeError):
    """Raised when the boundaries of a state cannot be produced."""


class BlockBoundarySource:
    """Reads census block polygons for a state and reprojects them to the raster CRS."""

    def __init__(
        self,
        template: str = TIGER_BLOCKS_TEMPLATE,
        *,
        id_column: str = 'GEOID20',
        crs=None,
        debug: bool = False,
    ):
        """
        Parameters
        ----------
        template : str
            Path or URL with a ``{fips}`` placeholder.
        id_column : str, default 'GEOID20'
            Column holding the block identifier.
        crs : pyproj.CRS | str, optional
            Target CRS. Boundaries are left in their source CRS when None.
        debug : bool, default False
            Enable debug logging.
        """
        if '{fips}' not in template:
            raise ValueError('Boundary template must contain a {fips} placeholder')
        self.template = template
        self.id_column = id_column
        self.crs = crs
        self.debug = debug

    def location(self, fips: str) -> str:
        return self.template.format(fips=fips)

    def _read(self, location: str) -> gpd.GeoDataFrame:
        if location.endswith('.parquet'):
            return gpd.read_parquet(location)
        return gpd.read_file(location)

    def for_state(self, fips: str, *, crs=None) -> gpd.GeoDataFrame:
        """
        Block polygons of one state.

        Parameters
        ----------
        fips : str
            Two digit state FIPS code.
        crs : pyproj.CRS | str, optional
            Target CRS for this call, overriding the one given at construction.

        Returns
        -------
        gpd.GeoDataFrame
            Columns ``block`` (str) and ``geometry``, sorted by block, in the
            target CRS.

        Raises
        ------
        BoundarySourceError
            If the source cannot be read, lacks the id column or a CRS, or
            contains duplicate identifiers.
        """
        location = self.location(fips)
        if self.debug:
            console.log(f'Reading block boundaries for state {fips} from {location}')
        try:
            gdf = self._read(location)
        except Exception as exc:
            raise BoundarySourceError(f'Failed to read boundaries from {location}: {exc}') from exc

        if self.id_column not in gdf.columns:
            raise BoundarySourceError(
                f'Boundary source {location} has no {self.id_column!r} column. '
                f'Available columns: {", ".join(map(str, gdf.columns))}'
            )

        blocks = gpd.GeoDataFrame(
            {'block': gdf[self.id_column].astype(str).values},
            geometry=gdf.geometry.values,
            crs=gdf.crs,
        )
        duplicated = blocks['block'][blocks['block'].duplicated()].unique()
        if len(duplicated):
            raise BoundarySourceError(
                f'Boundary source {location} has {len(duplicated)} duplicate block '
                f'identifiers, e.g. {", ".join(sorted(duplicated)[:5])}'
            )

        target_crs = crs if crs is not None else self.crs
        if target_crs is not None:
            if blocks.crs is None:
                raise BoundarySourceError(f'Boundary source {location} has no CRS defined')
            blocks = blocks.to_crs(target_crs)

        if self.debug:
            console.log(f'Loaded {len(blocks)} blocks for state {fips}')
        return blocks.sort_values('block', ignore_index=True)


def iter_boundaries(gdf: gpd.GeoDataFrame) -> Iterator[tuple[str, object]]:
    yield from zip(gdf['block'], gdf.geometry)
