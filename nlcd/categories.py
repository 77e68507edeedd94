"""NLCD land cover legend.

Codes follow the National Land Cover Database class legend. Codes 51, 72, 73
and 74 only occur in the Alaska product. Raster editions may introduce codes
that are not listed here; those are carried through the pipeline untouched and
only lack a human-readable label.

Reference:
https://www.mrlc.gov/data/legends/national-land-cover-database-class-legend-and-description
"""

import re

from nlcd.types import TableKind

NLCD_CATEGORIES: dict[int, str] = {
    11: 'Open Water',
    12: 'Perennial Ice/Snow',
    21: 'Developed, Open Space',
    22: 'Developed, Low Intensity',
    23: 'Developed, Medium Intensity',
    24: 'Developed, High Intensity',
    31: 'Barren Land (Rock/Sand/Clay)',
    41: 'Deciduous Forest',
    42: 'Evergreen Forest',
    43: 'Mixed Forest',
    51: 'Dwarf Scrub',
    52: 'Shrub/Scrub',
    71: 'Grassland/Herbaceous',
    72: 'Sedge/Herbaceous',
    73: 'Lichens',
    74: 'Moss',
    81: 'Pasture/Hay',
    82: 'Cultivated Crops',
    90: 'Woody Wetlands',
    95: 'Emergent Herbaceous Wetlands',
}

TOTAL_COLUMN = 'count_total'

_COLUMN_PATTERN = re.compile(r'^(count|prop)_(-?\d+)$')


def is_known(code: int) -> bool:
    return int(code) in NLCD_CATEGORIES


def category_label(code: int) -> str:
    """Return the legend label for ``code``, or a placeholder for unknown codes."""
    return NLCD_CATEGORIES.get(int(code), f'Unknown ({int(code)})')


def category_column(code: int, kind: TableKind = TableKind.COUNT) -> str:
    """Column name holding ``code`` in a wide table, e.g. ``count_41``."""
    return f'{TableKind(kind).value}_{int(code)}'


def parse_category_column(name: str) -> int | None:
    """Inverse of :func:`category_column`.

    Returns the category code for ``count_<code>`` / ``prop_<code>`` columns and
    None for anything else (identifier columns, ``count_total``).
    """
    match = _COLUMN_PATTERN.match(name)
    if match is None:
        return None
    return int(match.group(2))
