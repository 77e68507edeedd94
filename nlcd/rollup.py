"""Merge per-block histograms into wide tables and roll them up the census hierarchy."""

from collections.abc import Iterable

import pandas as pd

from nlcd.aggregator import HistogramRecord
from nlcd.categories import TOTAL_COLUMN, category_column, parse_category_column
from nlcd.io import CHECKPOINT_COLUMNS
from nlcd.types import PREFIX_LENGTHS, GeoLevel, TableKind


class EmptyResultError(ValueError):
    """Raised when a state has no histogram records to merge."""


def records_to_frame(records: Iterable[HistogramRecord]) -> pd.DataFrame:
    """Long-format frame with one row per (block, category)."""
    df = pd.DataFrame.from_records(list(records), columns=CHECKPOINT_COLUMNS)
    df = df.astype({'block': str, 'category': 'int64', 'count': 'int64'})
    # rows ordered by (block, category) whatever the completion order
    return df.sort_values(['block', 'category'], ignore_index=True)


def observed_categories(long_df: pd.DataFrame) -> list[int]:
    return sorted(int(code) for code in long_df['category'].unique())


def pivot_counts(long_df: pd.DataFrame) -> pd.DataFrame:
    """
    Pivot long records into the wide block count table.

    The column set is fixed up front from every category seen in the state, so
    every block row has the same columns and absent categories are 0.

    Parameters
    ----------
    long_df : pd.DataFrame
        Columns ``block``, ``category``, ``count``. Repeated (block, category)
        pairs are summed.

    Returns
    -------
    pd.DataFrame
        ``block``, ``count_<code>`` for each observed code in ascending order,
        and ``count_total``; sorted by block.

    Raises
    ------
    EmptyResultError
        If ``long_df`` has no rows.
    """
    if long_df.empty:
        raise EmptyResultError('No histogram records to merge')

    codes = observed_categories(long_df)
    summed = long_df.groupby(['block', 'category'], sort=True)['count'].sum()
    wide = summed.unstack('category', fill_value=0).reindex(columns=codes, fill_value=0)
    wide.columns = [category_column(code) for code in codes]
    wide = wide.astype('int64')
    wide[TOTAL_COLUMN] = wide.sum(axis=1)
    wide.index.name = 'block'
    return wide.reset_index().sort_values('block', ignore_index=True)


def rollup(block_table: pd.DataFrame, level: GeoLevel) -> pd.DataFrame:
    """Sum block rows into block groups or tracts by identifier prefix."""
    level = GeoLevel(level)
    if level == GeoLevel.BLOCK:
        return block_table.copy()

    keys = block_table['block'].str.slice(0, PREFIX_LENGTHS[level]).rename(level.value)
    summed = block_table.drop(columns='block').groupby(keys, sort=True).sum()
    return summed.reset_index()


def build_tables(long_df: pd.DataFrame) -> dict[GeoLevel, pd.DataFrame]:
    """Wide count tables for every level, finest first."""
    blocks = pivot_counts(long_df)
    return {level: rollup(blocks, level) for level in GeoLevel}


def to_proportions(wide: pd.DataFrame, level: GeoLevel) -> pd.DataFrame:
    """
    Derive the proportion table from a wide count table.

    Each ``count_<code>`` is divided by ``count_total`` and rounded to 4
    decimals. Rows with ``count_total == 0`` get 0 in every column.

    Parameters
    ----------
    wide : pd.DataFrame
        Count table produced by :func:`pivot_counts` or :func:`rollup`.
    level : GeoLevel
        Level of ``wide``; names its identifier column.

    Returns
    -------
    pd.DataFrame
        Identifier column followed by ``prop_<code>`` columns.
    """
    id_column = GeoLevel(level).value
    count_columns = [c for c in wide.columns if parse_category_column(c) is not None]
    total = wide[TOTAL_COLUMN]
    has_cells = total > 0

    props = wide[count_columns].div(total.where(has_cells), axis=0).round(4)
    props.loc[~has_cells, :] = 0.0
    props = props.astype('float64')
    props.columns = [
        category_column(parse_category_column(c), TableKind.PROP) for c in count_columns
    ]
    props.insert(0, id_column, wide[id_column].values)
    return props
