"""Chain timing constants (mainnet values).

Only the values needed to map wall-clock time onto slots, epochs and
sync committee periods live here.
"""

from typing import Final

MAINNET_GENESIS_TIME: Final = 1606824023

SECONDS_PER_SLOT: Final = 12
SLOTS_PER_EPOCH: Final = 32
EPOCHS_PER_SYNC_COMMITTEE_PERIOD: Final = 256

MS_PER_SECOND: Final = 1000
MS_PER_MINUTE: Final = 60 * MS_PER_SECOND
