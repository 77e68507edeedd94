"""Persisted artifacts: long-format checkpoints and gzip CSV output tables."""

import gzip

import pandas as pd
from upath import UPath

from nlcd.types import GeoLevel, TableKind

CHECKPOINT_COLUMNS = ['block', 'category', 'count']


class OutputWriteError(OSError):
    """Raised when a table or checkpoint cannot be persisted."""


def output_name(level: GeoLevel, kind: TableKind, fips: str) -> str:
    """File name of an output table, e.g. ``nlcd_blockgroup_prop_06.csv.gz``."""
    return f'nlcd_{GeoLevel(level).value}_{TableKind(kind).value}_{fips}.csv.gz'


def checkpoint_name(fips: str) -> str:
    return f'state_{fips}_block_counts.csv'


def _as_upath(uri) -> UPath:
    return uri if isinstance(uri, UPath) else UPath(uri)


def write_table(df: pd.DataFrame, uri: UPath | str) -> UPath:
    """Write a wide table as a gzip compressed CSV.

    The gzip header carries neither a timestamp nor a file name, so the same
    table always compresses to identical bytes wherever it is written.

    Parameters
    ----------
    df : pd.DataFrame
        Count or proportion table.
    uri : UPath | str
        Destination, local path or any fsspec URL.

    Returns
    -------
    UPath
        The written location.

    Raises
    ------
    OutputWriteError
        If the destination cannot be written.
    """
    uri = _as_upath(uri)
    try:
        uri.parent.mkdir(parents=True, exist_ok=True)
        with uri.open('wb') as f:
            f.write(gzip.compress(df.to_csv(index=False).encode('utf-8'), mtime=0))
    except OSError as exc:
        raise OutputWriteError(f'Failed to write table to {uri}: {exc}') from exc
    return uri


def read_table(uri: UPath | str, id_column: str) -> pd.DataFrame:
    uri = _as_upath(uri)
    with uri.open('rb') as f:
        return pd.read_csv(f, compression='gzip', dtype={id_column: str})


def write_checkpoint(long_df: pd.DataFrame, uri: UPath | str) -> UPath:
    """Persist raw (block, category, count) records for one state."""
    uri = _as_upath(uri)
    missing = set(CHECKPOINT_COLUMNS).difference(long_df.columns)
    if missing:
        raise ValueError(f'Checkpoint frame is missing columns: {sorted(missing)}')
    try:
        uri.parent.mkdir(parents=True, exist_ok=True)
        with uri.open('w') as f:
            long_df[CHECKPOINT_COLUMNS].to_csv(f, index=False)
    except OSError as exc:
        raise OutputWriteError(f'Failed to write checkpoint to {uri}: {exc}') from exc
    return uri


def read_checkpoint(uri: UPath | str) -> pd.DataFrame:
    """Read a checkpoint back, keeping block identifiers as strings."""
    uri = _as_upath(uri)
    if not uri.exists():
        raise FileNotFoundError(f'No checkpoint found at {uri}')
    with uri.open('r') as f:
        return pd.read_csv(
            f, dtype={'block': str, 'category': 'int64', 'count': 'int64'}
        )[CHECKPOINT_COLUMNS]
