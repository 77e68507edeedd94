"""Per-state processing loop.

Each state runs through a fixed sequence of phases. A phase either hands its
value to the next phase or stops the state with a :class:`StateOutcome`; the
loop in :func:`run_states` records the outcome and moves on to the next state.

Stage 1 (``aggregate``): setup -> batch -> checkpoint
Stage 2 (``rollup``): merge -> write
"""

import dataclasses
import threading
import typing

import geopandas as gpd
import pandas as pd
from upath import UPath

from nlcd.boundaries import BlockBoundarySource, iter_boundaries
from nlcd.config import NLCDConfig
from nlcd.console import console
from nlcd.io import OutputWriteError, read_checkpoint, write_checkpoint, write_table
from nlcd.raster import NLCDRaster, RasterSubset
from nlcd.rollup import EmptyResultError, build_tables, records_to_frame, to_proportions
from nlcd.scheduler import BatchResult, BatchScheduler, WorkUnit
from nlcd.states import state_name
from nlcd.types import GeoLevel, OutcomeStatus, Phase, TableKind

T = typing.TypeVar('T')

Stage = typing.Literal['aggregate', 'rollup']


@dataclasses.dataclass
class StateOutcome:
    fips: str
    status: OutcomeStatus
    phase: Phase
    message: str = ''
    blocks: int = 0
    failed_blocks: list[str] = dataclasses.field(default_factory=list)
    records: int = 0
    written: list[UPath] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


@dataclasses.dataclass
class PhaseResult(typing.Generic[T]):
    """Value of a completed phase, or the outcome that ends the state."""

    value: T | None = None
    outcome: StateOutcome | None = None

    @property
    def stopped(self) -> bool:
        return self.outcome is not None


def _fail(fips: str, phase: Phase, message: str) -> PhaseResult:
    console.log(
        f'[red]State {fips} ({state_name(fips)}) failed during {phase.value}: {message}[/red]'
    )
    return PhaseResult(outcome=StateOutcome(fips, OutcomeStatus.FAILED, phase, message))


# ------------------------------------------------------------------
# phases
# ------------------------------------------------------------------


def setup_state(
    fips: str, *, raster: NLCDRaster, boundaries: BlockBoundarySource
) -> PhaseResult[tuple[gpd.GeoDataFrame, RasterSubset]]:
    """Load the state's blocks and crop the raster to their combined extent."""
    try:
        blocks = boundaries.for_state(fips, crs=raster.crs)
        if blocks.empty:
            return _fail(fips, Phase.SETUP, 'boundary source returned no blocks')
        subset = raster.crop(tuple(blocks.total_bounds))
    except Exception as exc:
        return _fail(fips, Phase.SETUP, str(exc))
    return PhaseResult(value=(blocks, subset))


def batch_state(
    fips: str,
    blocks: gpd.GeoDataFrame,
    subset: RasterSubset,
    *,
    scheduler: BatchScheduler,
    cancel_event: threading.Event | None = None,
) -> PhaseResult[BatchResult]:
    """Aggregate every block of the state; per-block failures never stop the state."""
    units = [
        WorkUnit(index, block_id, geometry)
        for index, (block_id, geometry) in enumerate(iter_boundaries(blocks))
    ]
    result = scheduler.run(
        units, subset, cancel_event=cancel_event, label=f'{state_name(fips)} ({fips})'
    )
    if result.cancelled:
        return PhaseResult(
            outcome=StateOutcome(
                fips,
                OutcomeStatus.CANCELLED,
                Phase.BATCH,
                f'cancelled after {result.completed}/{result.total} blocks',
                blocks=result.total,
                failed_blocks=result.failed,
            )
        )
    if result.failed:
        console.log(
            f'[yellow]State {fips}: {len(result.failed)} of {result.total} blocks failed '
            'and contribute no cells[/yellow]'
        )
    return PhaseResult(value=result)


def checkpoint_state(
    fips: str, long_df: pd.DataFrame, *, config: NLCDConfig
) -> PhaseResult[UPath]:
    try:
        uri = write_checkpoint(long_df, config.checkpoint_uri(fips))
    except OutputWriteError as exc:
        return _fail(fips, Phase.CHECKPOINT, str(exc))
    if config.debug:
        console.log(f'Wrote {len(long_df)} block records for state {fips} to {uri}')
    return PhaseResult(value=uri)


def merge_state(
    fips: str, long_df: pd.DataFrame
) -> PhaseResult[dict[GeoLevel, pd.DataFrame]]:
    """Pivot and roll up; a state without any records is skipped."""
    try:
        tables = build_tables(long_df)
    except EmptyResultError:
        message = 'no blocks produced any cells, skipping output'
        console.log(f'[yellow]State {fips}: {message}[/yellow]')
        return PhaseResult(
            outcome=StateOutcome(fips, OutcomeStatus.SKIPPED, Phase.MERGE, message)
        )
    except Exception as exc:
        return _fail(fips, Phase.MERGE, str(exc))
    return PhaseResult(value=tables)


def write_state(
    fips: str, tables: dict[GeoLevel, pd.DataFrame], *, config: NLCDConfig
) -> PhaseResult[list[UPath]]:
    written: list[UPath] = []
    try:
        for level, table in tables.items():
            written.append(write_table(table, config.table_uri(level, TableKind.COUNT, fips)))
            if config.write_proportions:
                written.append(
                    write_table(
                        to_proportions(table, level),
                        config.table_uri(level, TableKind.PROP, fips),
                    )
                )
    except OutputWriteError as exc:
        result = _fail(fips, Phase.WRITE, str(exc))
        result.outcome.written = written
        return result
    if config.debug:
        for uri in written:
            console.log(f'Wrote {uri}')
    return PhaseResult(value=written)


# ------------------------------------------------------------------
# stages
# ------------------------------------------------------------------


def aggregate_state(
    fips: str,
    config: NLCDConfig,
    *,
    raster: NLCDRaster,
    boundaries: BlockBoundarySource,
    scheduler: BatchScheduler,
    cancel_event: threading.Event | None = None,
) -> tuple[StateOutcome, pd.DataFrame | None]:
    """Stage 1: block histograms for one state, persisted as a checkpoint."""
    setup = setup_state(fips, raster=raster, boundaries=boundaries)
    if setup.stopped:
        return setup.outcome, None
    blocks, subset = setup.value

    batch = batch_state(fips, blocks, subset, scheduler=scheduler, cancel_event=cancel_event)
    if batch.stopped:
        return batch.outcome, None
    long_df = records_to_frame(batch.value.records)

    checkpoint = checkpoint_state(fips, long_df, config=config)
    if checkpoint.stopped:
        checkpoint.outcome.blocks = len(blocks)
        return checkpoint.outcome, None

    outcome = StateOutcome(
        fips,
        OutcomeStatus.SUCCESS,
        Phase.CHECKPOINT,
        blocks=len(blocks),
        failed_blocks=batch.value.failed,
        records=len(long_df),
        written=[checkpoint.value],
    )
    return outcome, long_df


def rollup_state(
    fips: str, config: NLCDConfig, long_df: pd.DataFrame | None = None
) -> StateOutcome:
    """Stage 2: wide count (and proportion) tables from the state's records."""
    if long_df is None:
        try:
            long_df = read_checkpoint(config.checkpoint_uri(fips))
        except Exception as exc:
            return _fail(fips, Phase.MERGE, str(exc)).outcome

    merge = merge_state(fips, long_df)
    if merge.stopped:
        merge.outcome.records = len(long_df)
        return merge.outcome

    write = write_state(fips, merge.value, config=config)
    if write.stopped:
        write.outcome.records = len(long_df)
        return write.outcome

    return StateOutcome(
        fips,
        OutcomeStatus.SUCCESS,
        Phase.WRITE,
        blocks=len(merge.value[GeoLevel.BLOCK]),
        records=len(long_df),
        written=write.value,
    )


def process_state(
    fips: str,
    config: NLCDConfig,
    *,
    raster: NLCDRaster,
    boundaries: BlockBoundarySource,
    scheduler: BatchScheduler,
    cancel_event: threading.Event | None = None,
) -> StateOutcome:
    """Both stages for one state, handing the records over in memory."""
    aggregated, long_df = aggregate_state(
        fips,
        config,
        raster=raster,
        boundaries=boundaries,
        scheduler=scheduler,
        cancel_event=cancel_event,
    )
    if not aggregated.ok:
        return aggregated

    outcome = rollup_state(fips, config, long_df)
    outcome.blocks = aggregated.blocks
    outcome.failed_blocks = aggregated.failed_blocks
    outcome.written = aggregated.written + outcome.written
    return outcome


def outputs_exist(fips: str, config: NLCDConfig) -> bool:
    return all(config.table_uri(level, TableKind.COUNT, fips).exists() for level in GeoLevel)


def run_states(
    fips_codes: list[str],
    config: NLCDConfig,
    *,
    stages: tuple[Stage, ...] = ('aggregate', 'rollup'),
    raster: NLCDRaster | None = None,
    boundaries: BlockBoundarySource | None = None,
    scheduler: BatchScheduler | None = None,
    cancel_event: threading.Event | None = None,
    skip_existing: bool = False,
) -> list[StateOutcome]:
    """
    Process states one after another.

    Parameters
    ----------
    fips_codes : list[str]
        States to process, in order.
    config : NLCDConfig
        Paths and processing settings.
    stages : tuple, default ('aggregate', 'rollup')
        Which stages to run. Running only ``rollup`` reads the checkpoints
        written by an earlier ``aggregate`` run.
    raster, boundaries, scheduler : optional
        Collaborators; built from ``config`` when omitted.
    cancel_event : threading.Event, optional
        Cancels the batch of the state being processed. The event is cleared
        afterwards and the loop continues with the next state.
    skip_existing : bool, default False
        Skip states whose count tables already exist.

    Returns
    -------
    list[StateOutcome]
        One outcome per state. Failures are reported here and never raised.
    """
    run_aggregate = 'aggregate' in stages
    if run_aggregate:
        if raster is None:
            if not config.raster_path:
                raise ValueError('raster_path must be configured to aggregate blocks')
            raster = NLCDRaster(
                config.raster_path, nodata=config.nodata, chunk_size=config.raster_chunk_size
            )
        if boundaries is None:
            boundaries = BlockBoundarySource(
                config.blocks_template, id_column=config.block_id_column, debug=config.debug
            )
        if scheduler is None:
            scheduler = BatchScheduler(
                max_workers=config.max_workers,
                executor=config.executor,
                show_progress=config.show_progress,
                debug=config.debug,
            )

    outcomes: list[StateOutcome] = []
    for fips in fips_codes:
        console.log(f'Processing state {fips} ({state_name(fips)})')
        if skip_existing and outputs_exist(fips, config):
            console.log(f'State {fips}: outputs already exist, skipping')
            outcomes.append(
                StateOutcome(fips, OutcomeStatus.SKIPPED, Phase.SETUP, 'outputs already exist')
            )
            continue

        if run_aggregate:
            collaborators = dict(
                raster=raster, boundaries=boundaries, scheduler=scheduler, cancel_event=cancel_event
            )
            if 'rollup' in stages:
                outcome = process_state(fips, config, **collaborators)
            else:
                outcome, _ = aggregate_state(fips, config, **collaborators)
        else:
            outcome = rollup_state(fips, config)

        if outcome.status == OutcomeStatus.CANCELLED and cancel_event is not None:
            cancel_event.clear()
        outcomes.append(outcome)

    return outcomes


def print_summary(outcomes: list[StateOutcome]) -> None:
    from rich.table import Table

    table = Table(title='State Summary')
    table.add_column('State', style='cyan')
    table.add_column('Status', style='magenta')
    table.add_column('Phase')
    table.add_column('Blocks', justify='right')
    table.add_column('Failed blocks', justify='right')
    table.add_column('Records', justify='right')
    table.add_column('Message', style='green')

    styles = {
        OutcomeStatus.SUCCESS: '[green]success[/green]',
        OutcomeStatus.FAILED: '[red]failed[/red]',
        OutcomeStatus.SKIPPED: '[yellow]skipped[/yellow]',
        OutcomeStatus.CANCELLED: '[yellow]cancelled[/yellow]',
    }
    for outcome in outcomes:
        table.add_row(
            f'{outcome.fips} {state_name(outcome.fips)}',
            styles[outcome.status],
            outcome.phase.value,
            str(outcome.blocks),
            str(len(outcome.failed_blocks)),
            str(outcome.records),
            outcome.message,
        )
    console.print(table)
