import functools
from pathlib import Path

import dotenv
import pydantic
import pydantic_settings
from upath import UPath

from nlcd.console import console
from nlcd.io import checkpoint_name, output_name
from nlcd.types import ExecutorKind, GeoLevel, TableKind

TIGER_BLOCKS_TEMPLATE = (
    'https://www2.census.gov/geo/tiger/TIGER2020/TABBLOCK20/tl_2020_{fips}_tabblock20.zip'
)


class NLCDConfig(pydantic_settings.BaseSettings):
    """Configuration settings for land cover aggregation."""

    storage_root: str = pydantic.Field(
        ..., description='Root storage path for checkpoints and output tables, local or fsspec URL'
    )
    raster_path: str | None = pydantic.Field(
        None, description='Path or URL of the classified land cover raster (GeoTIFF/COG)'
    )
    blocks_template: str = pydantic.Field(
        TIGER_BLOCKS_TEMPLATE,
        description='Path or URL of the census block boundaries, with a {fips} placeholder',
    )
    block_id_column: str = pydantic.Field(
        'GEOID20', description='Column holding the 15 character block identifier'
    )
    nodata: int | None = pydantic.Field(
        None, description='No-data value of the raster. Overrides the value tagged in the file'
    )
    raster_chunk_size: pydantic.PositiveInt = pydantic.Field(
        4096, description='Tile edge length (cells) used for lazy raster reads'
    )
    max_workers: pydantic.PositiveInt | None = pydantic.Field(
        None, description='Worker pool size. Defaults to available CPUs minus one'
    )
    executor: ExecutorKind = pydantic.Field(
        ExecutorKind.THREAD, description='Worker pool flavour: thread or process'
    )
    write_proportions: bool = pydantic.Field(
        True, description='Also write proportion tables next to the count tables'
    )
    show_progress: bool = pydantic.Field(False, description='Render a progress bar per state')
    debug: bool = pydantic.Field(False, description='Enable debugging mode')

    model_config = {'env_prefix': 'nlcd_', 'case_sensitive': False}

    @pydantic.field_validator('blocks_template')
    @classmethod
    def _template_has_fips(cls, value: str) -> str:
        if '{fips}' not in value:
            raise ValueError('blocks_template must contain a {fips} placeholder')
        return value

    @functools.cached_property
    def checkpoint_dir(self) -> UPath:
        path = UPath(f'{self.storage_root}/checkpoints')
        path.mkdir(parents=True, exist_ok=True)
        return path

    @functools.cached_property
    def tables_dir(self) -> UPath:
        path = UPath(f'{self.storage_root}/tables')
        path.mkdir(parents=True, exist_ok=True)
        return path

    def checkpoint_uri(self, fips: str) -> UPath:
        """URI of the long-format block counts for one state."""
        return self.checkpoint_dir / checkpoint_name(fips)

    def table_uri(self, level: GeoLevel, kind: TableKind, fips: str) -> UPath:
        return self.tables_dir / output_name(level, kind, fips)

    def pretty_paths(self) -> None:
        """Pretty print key NLCDConfig settings and paths."""
        from rich.panel import Panel
        from rich.table import Table

        def nv(name: str, value: str | None):
            return name, (str(value) if value not in (None, '') else '—')

        rows: list[tuple[str, str]] = [
            nv('Storage root', self.storage_root),
            nv('Raster', self.raster_path),
            nv('Blocks template', self.blocks_template),
            nv('Block id column', self.block_id_column),
            nv('No-data override', None if self.nodata is None else str(self.nodata)),
            nv('Executor', self.executor.value),
            nv('Max workers', None if self.max_workers is None else str(self.max_workers)),
            nv('Write proportions', str(self.write_proportions)),
            nv('Checkpoints', str(self.checkpoint_dir)),
            nv('Tables', str(self.tables_dir)),
        ]

        table = Table(title=None, show_header=True, header_style='bold magenta')
        table.add_column('NLCD setting', style='bold cyan', no_wrap=True)
        table.add_column('Value', style='green')
        for k, v in rows:
            table.add_row(k, v)

        console.print(Panel(table, title='NLCDConfig', title_align='left'))


def load_config(file_path: Path | None) -> NLCDConfig:
    """Load configuration from an env file (dotenv) or current environment."""
    if file_path is None:
        return NLCDConfig()
    dotenv.load_dotenv(file_path)
    return NLCDConfig()
