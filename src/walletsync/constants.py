"""
Wallet engine constants.

The engine reports every amount in integer minor units (zatoshis).
"""

from __future__ import annotations

# Minor units per whole coin
UNITS_PER_COIN = 10**8

# Number of decimals used for fixed-point detail amounts
AMOUNT_DECIMALS = 8

# Coarse full-refresh cycle (seconds)
DEFAULT_REFRESH_INTERVAL = 3 * 60.0

# Fast change-detection cycle (seconds)
DEFAULT_UPDATE_INTERVAL = 3.0

# Post-sync wait: poll wallet height once per second, at most 30 times
DEFAULT_SYNC_POLL_INTERVAL = 1.0
DEFAULT_MAX_SYNC_ATTEMPTS = 30

# Send progress polling
DEFAULT_SEND_POLL_INTERVAL = 2.0
DEFAULT_SECONDS_PER_COMPUTATION = 3.0

# Price queries and send dispatch signal failure with a plain string instead of JSON
PRICE_ERROR_PREFIX = "error"
SEND_ERROR_PREFIX = "error"

# Engine sets the transaction filter threshold to -1 when it was never configured
UNSET_FILTER_THRESHOLD = "-1"
DEFAULT_FILTER_THRESHOLD = "50"

TESTNET_CHAIN_NAME = "test"
MAINNET_CURRENCY = "ZEC"
TESTNET_CURRENCY = "TAZ"
