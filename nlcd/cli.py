import contextlib
import signal
import threading
from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table

from nlcd.categories import NLCD_CATEGORIES
from nlcd.config import NLCDConfig, load_config
from nlcd.console import console
from nlcd.dep_versions import show_versions as print_versions
from nlcd.pipeline import StateOutcome, print_summary, run_states
from nlcd.states import CONUS_FIPS, STATE_FIPS, select_states
from nlcd.types import ExecutorKind, OutcomeStatus, Phase

app = typer.Typer(help='Aggregate NLCD land cover to census blocks, block groups and tracts')

ENV_FILE_OPTION = typer.Option(
    None,
    '-e',
    '--env-file',
    help='Path to the environment variables file. These will be used to set up the NLCDConfig',
    show_default=True,
    exists=True,
    file_okay=True,
    resolve_path=True,
)
STATES_OPTION = typer.Option(
    None, '-s', '--state', help='State FIPS code or name to process, e.g., 06 or California'
)
ALL_STATES_OPTION = typer.Option(
    False, '--all-states', help='Process all CONUS states + DC', show_default=True
)


def _config(
    env_file: Path | None,
    *,
    debug: bool = False,
    max_workers: int | None = None,
    executor: ExecutorKind | None = None,
    no_proportions: bool = False,
) -> NLCDConfig:
    config = load_config(env_file)
    update: dict = {}
    if debug:
        update['debug'] = True
    if max_workers is not None:
        update['max_workers'] = max_workers
    if executor is not None:
        update['executor'] = executor
    if no_proportions:
        update['write_proportions'] = False
    return config.model_copy(update=update) if update else config


def _states(state: list[str] | None, all_states: bool) -> list[str]:
    if all_states and state:
        raise typer.BadParameter(
            'Cannot use --all-states and -s/--state together. Please specify either one.'
        )
    if not all_states and not state:
        raise typer.BadParameter('You must specify either --state or --all-states.')
    try:
        selection = select_states(state, all_states=all_states)
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    if selection.invalid:
        console.log(
            f'[yellow]Ignoring unknown state identifiers: {", ".join(selection.invalid)}[/yellow]'
        )
    return selection.valid


@contextlib.contextmanager
def _cancel_on_interrupt():
    """
    Turn the first Ctrl-C into a cancellation of the state being aggregated.

    The yielded event is handed to ``run_states``, which cancels the queued
    blocks of the current state and moves on. A second Ctrl-C before the
    loop has cleared the event aborts the whole run.
    """
    event = threading.Event()

    def _handler(signum, frame):
        if event.is_set():
            raise KeyboardInterrupt
        console.log(
            '[yellow]Interrupt received, cancelling the current state. '
            'Press Ctrl-C again to abort.[/yellow]'
        )
        event.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield event
    finally:
        signal.signal(signal.SIGINT, previous)


def _finish(outcomes: list[StateOutcome]) -> None:
    print_summary(outcomes)
    # persisted outputs: the checkpoint (stage 1) and the tables (stage 2)
    write_failures = [
        o
        for o in outcomes
        if o.status == OutcomeStatus.FAILED and o.phase in (Phase.CHECKPOINT, Phase.WRITE)
    ]
    if write_failures:
        console.print(
            f'[bold red]✗[/] Failed to write outputs for '
            f'{", ".join(o.fips for o in write_failures)}'
        )
        raise typer.Exit(1)


@app.command()
def run(
    env_file: Path | None = ENV_FILE_OPTION,
    state: list[str] | None = STATES_OPTION,
    all_states: bool = ALL_STATES_OPTION,
    max_workers: int | None = typer.Option(
        None, '-w', '--max-workers', min=1, help='Worker pool size override'
    ),
    executor: ExecutorKind | None = typer.Option(
        None, '--executor', help='Worker pool flavour override'
    ),
    no_proportions: bool = typer.Option(
        False, '--no-proportions', help='Only write count tables', show_default=True
    ),
    skip_existing: bool = typer.Option(
        False,
        '--skip-existing',
        help='Skip states whose count tables already exist',
        show_default=True,
    ),
    debug: bool = typer.Option(False, '--debug', help='Enable debug logging'),
):
    """
    Run both stages for each state: aggregate the raster to blocks, then write
    block, block group and tract tables.
    """
    fips_codes = _states(state, all_states)
    config = _config(
        env_file,
        debug=debug,
        max_workers=max_workers,
        executor=executor,
        no_proportions=no_proportions,
    )
    with _cancel_on_interrupt() as cancel_event:
        outcomes = run_states(
            fips_codes, config, skip_existing=skip_existing, cancel_event=cancel_event
        )
    _finish(outcomes)


@app.command()
def aggregate(
    env_file: Path | None = ENV_FILE_OPTION,
    state: list[str] | None = STATES_OPTION,
    all_states: bool = ALL_STATES_OPTION,
    max_workers: int | None = typer.Option(
        None, '-w', '--max-workers', min=1, help='Worker pool size override'
    ),
    executor: ExecutorKind | None = typer.Option(
        None, '--executor', help='Worker pool flavour override'
    ),
    debug: bool = typer.Option(False, '--debug', help='Enable debug logging'),
):
    """Stage 1: write the long-format block counts checkpoint for each state."""
    fips_codes = _states(state, all_states)
    config = _config(env_file, debug=debug, max_workers=max_workers, executor=executor)
    with _cancel_on_interrupt() as cancel_event:
        outcomes = run_states(
            fips_codes, config, stages=('aggregate',), cancel_event=cancel_event
        )
    _finish(outcomes)


@app.command()
def rollup(
    env_file: Path | None = ENV_FILE_OPTION,
    state: list[str] | None = STATES_OPTION,
    all_states: bool = ALL_STATES_OPTION,
    no_proportions: bool = typer.Option(
        False, '--no-proportions', help='Only write count tables', show_default=True
    ),
    debug: bool = typer.Option(False, '--debug', help='Enable debug logging'),
):
    """Stage 2: build count and proportion tables from existing checkpoints."""
    fips_codes = _states(state, all_states)
    config = _config(env_file, debug=debug, no_proportions=no_proportions)
    outcomes = run_states(fips_codes, config, stages=('rollup',))
    _finish(outcomes)


@app.command()
def list_categories():
    """List the NLCD land cover categories."""
    table = Table(title='NLCD Land Cover Classes', show_header=True, header_style='bold magenta')
    table.add_column('Code', style='cyan', justify='right')
    table.add_column('Label', style='white')
    for code, label in NLCD_CATEGORIES.items():
        table.add_row(str(code), label)
    console.print(table)


@app.command()
def list_states():
    """List states and their FIPS codes."""
    table = Table(title='States', show_header=True, header_style='bold magenta')
    table.add_column('FIPS', style='cyan')
    table.add_column('Name', style='white')
    table.add_column('CONUS', style='green')
    for name, fips in sorted(STATE_FIPS.items(), key=lambda item: item[1]):
        table.add_row(fips, name, 'yes' if name in CONUS_FIPS else 'no')
    console.print(table)


@app.command()
def show_config(env_file: Path | None = ENV_FILE_OPTION):
    """Print the resolved configuration."""
    try:
        config = load_config(env_file)
    except Exception as exc:
        console.print(Panel(str(exc), title='Invalid configuration', border_style='red'))
        raise typer.Exit(1)
    config.pretty_paths()


@app.command()
def show_versions():
    """Print the versions of Python and the installed dependencies."""
    print_versions()


def main():
    app()


if __name__ == '__main__':
    main()
