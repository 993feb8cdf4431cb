"""
Chain reader: Transfer logs and contract reads from the block explorer.
"""

from vibescan.services.chain.etherscan import ETHERSCAN_RESULT_CAP, EtherscanClient
from vibescan.services.chain.logs import (
    ZERO_ADDRESS,
    BurnTransaction,
    Transfer,
    filter_to_sales_only,
    parse_burn_log,
    parse_transfer_log,
)

__all__ = [
    "ETHERSCAN_RESULT_CAP",
    "ZERO_ADDRESS",
    "BurnTransaction",
    "EtherscanClient",
    "Transfer",
    "filter_to_sales_only",
    "parse_burn_log",
    "parse_transfer_log",
]
