import numpy as np
import pandas as pd
import pytest

from nlcd.aggregator import HistogramRecord
from nlcd.rollup import (
    EmptyResultError,
    build_tables,
    observed_categories,
    pivot_counts,
    records_to_frame,
    rollup,
    to_proportions,
)
from nlcd.types import GeoLevel

# two block groups in tract 06001000100, one block group in tract 06001000200
BLOCK_A = '060010001001001'
BLOCK_B = '060010001001002'
BLOCK_C = '060010001002001'
BLOCK_D = '060010002001001'


@pytest.fixture
def records():
    return [
        HistogramRecord(BLOCK_A, 11, 2),
        HistogramRecord(BLOCK_A, 41, 3),
        HistogramRecord(BLOCK_B, 41, 4),
        HistogramRecord(BLOCK_C, 82, 5),
        HistogramRecord(BLOCK_D, 11, 1),
        HistogramRecord(BLOCK_D, 95, 9),
    ]


@pytest.fixture
def long_df(records):
    return records_to_frame(records)


class TestRecordsToFrame:
    def test_columns_and_dtypes(self, long_df):
        assert list(long_df.columns) == ['block', 'category', 'count']
        assert long_df['category'].dtype == 'int64'
        assert long_df['count'].dtype == 'int64'
        assert long_df['block'].iloc[0] == BLOCK_A

    def test_empty(self):
        df = records_to_frame([])
        assert df.empty
        assert list(df.columns) == ['block', 'category', 'count']

    def test_rows_sorted_whatever_the_input_order(self, records):
        expected = records_to_frame(records)
        assert expected['block'].is_monotonic_increasing
        pd.testing.assert_frame_equal(records_to_frame(reversed(records)), expected)

    def test_observed_categories(self, long_df):
        assert observed_categories(long_df) == [11, 41, 82, 95]


class TestPivotCounts:
    """Test the wide block count table."""

    def test_single_block(self):
        df = records_to_frame([HistogramRecord(BLOCK_A, 11, 2), HistogramRecord(BLOCK_A, 41, 3)])
        wide = pivot_counts(df)
        assert list(wide.columns) == ['block', 'count_11', 'count_41', 'count_total']
        assert wide.iloc[0].tolist() == [BLOCK_A, 2, 3, 5]

    def test_absent_categories_are_zero(self, long_df):
        wide = pivot_counts(long_df).set_index('block')
        assert list(wide.columns) == ['count_11', 'count_41', 'count_82', 'count_95', 'count_total']
        assert wide.loc[BLOCK_B].tolist() == [0, 4, 0, 0, 4]
        assert wide.loc[BLOCK_D].tolist() == [1, 0, 0, 9, 10]

    def test_total_is_row_sum(self, long_df):
        wide = pivot_counts(long_df)
        counts = wide.drop(columns=['block', 'count_total'])
        assert (counts.sum(axis=1) == wide['count_total']).all()
        assert wide['count_total'].sum() == long_df['count'].sum()

    def test_sorted_by_block(self, records):
        wide = pivot_counts(records_to_frame(reversed(records)))
        assert wide['block'].tolist() == [BLOCK_A, BLOCK_B, BLOCK_C, BLOCK_D]

    def test_independent_of_record_order(self, records):
        rng = np.random.default_rng(0)
        shuffled = [records[i] for i in rng.permutation(len(records))]
        pd.testing.assert_frame_equal(
            pivot_counts(records_to_frame(records)), pivot_counts(records_to_frame(shuffled))
        )

    def test_repeated_pairs_summed(self):
        df = records_to_frame([HistogramRecord(BLOCK_A, 11, 2), HistogramRecord(BLOCK_A, 11, 3)])
        assert pivot_counts(df)['count_11'].tolist() == [5]

    def test_unknown_code_kept(self):
        df = records_to_frame([HistogramRecord(BLOCK_A, 11, 2), HistogramRecord(BLOCK_A, 250, 1)])
        assert list(pivot_counts(df).columns) == ['block', 'count_11', 'count_250', 'count_total']

    def test_leading_zero_ids_kept(self):
        df = records_to_frame([HistogramRecord('010010201001000', 11, 1)])
        assert pivot_counts(df)['block'].tolist() == ['010010201001000']

    def test_empty_raises(self):
        with pytest.raises(EmptyResultError):
            pivot_counts(records_to_frame([]))


class TestRollup:
    """Test block group and tract sums."""

    def test_block_level_is_unchanged(self, long_df):
        blocks = pivot_counts(long_df)
        pd.testing.assert_frame_equal(rollup(blocks, GeoLevel.BLOCK), blocks)

    def test_blockgroup(self, long_df):
        table = rollup(pivot_counts(long_df), GeoLevel.BLOCKGROUP).set_index('blockgroup')
        assert table.index.tolist() == ['060010001001', '060010001002', '060010002001']
        assert table.loc['060010001001'].tolist() == [2, 7, 0, 0, 9]
        assert table.loc['060010001002'].tolist() == [0, 0, 5, 0, 5]

    def test_tract(self, long_df):
        table = rollup(pivot_counts(long_df), GeoLevel.TRACT)
        assert list(table.columns) == [
            'tract',
            'count_11',
            'count_41',
            'count_82',
            'count_95',
            'count_total',
        ]
        table = table.set_index('tract')
        assert table.loc['06001000100'].tolist() == [2, 7, 5, 0, 14]
        assert table.loc['06001000200'].tolist() == [1, 0, 0, 9, 10]

    def test_rollup_preserves_sums(self):
        rng = np.random.default_rng(7)
        records = [
            HistogramRecord(f'41001{tract:06d}{bg}{block:03d}', int(code), int(count))
            for tract in range(3)
            for bg in range(1, 4)
            for block in range(5)
            for code, count in zip(
                rng.choice([11, 21, 41, 42, 82], size=3, replace=False),
                rng.integers(1, 100, size=3),
            )
        ]
        tables = build_tables(records_to_frame(records))
        block_sums = tables[GeoLevel.BLOCK].drop(columns='block').sum()
        for level in (GeoLevel.BLOCKGROUP, GeoLevel.TRACT):
            level_sums = tables[level].drop(columns=level.value).sum()
            pd.testing.assert_series_equal(level_sums, block_sums)
        assert len(tables[GeoLevel.BLOCKGROUP]) == 9
        assert len(tables[GeoLevel.TRACT]) == 3

    def test_build_tables_levels(self, long_df):
        tables = build_tables(long_df)
        assert list(tables) == [GeoLevel.BLOCK, GeoLevel.BLOCKGROUP, GeoLevel.TRACT]
        for level, table in tables.items():
            assert table.columns[0] == level.value


class TestToProportions:
    """Test the proportion tables."""

    def test_single_block(self):
        df = records_to_frame([HistogramRecord(BLOCK_A, 11, 2), HistogramRecord(BLOCK_A, 41, 3)])
        props = to_proportions(pivot_counts(df), GeoLevel.BLOCK)
        assert list(props.columns) == ['block', 'prop_11', 'prop_41']
        assert props.iloc[0].tolist() == [BLOCK_A, 0.4, 0.6]

    def test_rounded_to_four_decimals(self):
        df = records_to_frame([HistogramRecord(BLOCK_A, 11, 1), HistogramRecord(BLOCK_A, 41, 2)])
        props = to_proportions(pivot_counts(df), GeoLevel.BLOCK)
        assert props['prop_11'].tolist() == [0.3333]
        assert props['prop_41'].tolist() == [0.6667]

    def test_rows_sum_to_one(self, long_df):
        for level, table in build_tables(long_df).items():
            props = to_proportions(table, level).drop(columns=level.value)
            assert np.allclose(props.sum(axis=1), 1.0, atol=1e-3)

    def test_zero_total_row(self):
        wide = pd.DataFrame(
            {
                'tract': ['06001000100', '06001000200'],
                'count_11': [0, 3],
                'count_41': [0, 1],
                'count_total': [0, 4],
            }
        )
        props = to_proportions(wide, GeoLevel.TRACT)
        assert props.iloc[0].tolist() == ['06001000100', 0.0, 0.0]
        assert props.iloc[1].tolist() == ['06001000200', 0.75, 0.25]
        assert not props.isna().any().any()

    def test_total_column_excluded(self, long_df):
        props = to_proportions(pivot_counts(long_df), GeoLevel.BLOCK)
        assert 'prop_total' not in props.columns
        assert 'count_total' not in props.columns
