from enum import Enum


class GeoLevel(str, Enum):
    """Census geographic levels an output table can be written at."""

    BLOCK = 'block'
    BLOCKGROUP = 'blockgroup'
    TRACT = 'tract'


class TableKind(str, Enum):
    COUNT = 'count'
    PROP = 'prop'


class ExecutorKind(str, Enum):
    THREAD = 'thread'
    PROCESS = 'process'


class Phase(str, Enum):
    """Per-state processing phases, in execution order."""

    SETUP = 'setup'
    BATCH = 'batch'
    CHECKPOINT = 'checkpoint'
    MERGE = 'merge'
    WRITE = 'write'


class OutcomeStatus(str, Enum):
    SUCCESS = 'success'
    FAILED = 'failed'
    SKIPPED = 'skipped'
    CANCELLED = 'cancelled'


# number of leading identifier characters shared by every block in a unit
PREFIX_LENGTHS: dict[GeoLevel, int] = {
    GeoLevel.BLOCK: 15,
    GeoLevel.BLOCKGROUP: 12,
    GeoLevel.TRACT: 11,
}
