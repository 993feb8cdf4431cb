"""
Etherscan V2 chain reader.

Fetches Transfer logs in sequential block-range batches under the shared
``etherscan`` rate limiter, plus the handful of single-value reads the
analytics need (head block, block timestamps, total supply, eth_call).
"""

import asyncio
import dataclasses
import logging
from typing import Any, Optional

from vibescan.core.config import settings
from vibescan.core.errors import NoDataFound, ProviderError, RateLimitExceeded
from vibescan.services.chain.logs import (
    TRANSFER_TOPIC,
    ZERO_TOPIC,
    BurnTransaction,
    Transfer,
    address_to_topic,
    hex_to_int,
    parse_burn_log,
    parse_transfer_log,
)
from vibescan.services.rate_limiting import ResilientFetch, get_rate_limiter

logger = logging.getLogger(__name__)

# getLogs returns at most this many records per call
ETHERSCAN_RESULT_CAP = 1000
# page * offset may not exceed this window
ETHERSCAN_MAX_WINDOW = 10000

_EMPTY_MARKERS = ("no transactions found", "no records found")
_RATE_LIMIT_MARKERS = ("rate limit", "max calls per sec")

BALANCE_OF_SELECTOR = "0x70a08231"


def unwrap_response(data: Any) -> Any:
    """
    Translate an Etherscan envelope into its ``result`` or a typed error.

    Module endpoints answer ``{"status", "message", "result"}`` with
    status "0" for both empty results and failures; proxy endpoints answer
    JSON-RPC ``{"result"}`` / ``{"error"}``.
    """
    if not isinstance(data, dict):
        raise ProviderError("Etherscan: unexpected response shape", provider="etherscan")

    if "status" in data:
        result = data.get("result")
        if str(data["status"]) == "1":
            return result
        text = f"{data.get('message', '')} {result if isinstance(result, str) else ''}".lower()
        if any(marker in text for marker in _EMPTY_MARKERS):
            raise NoDataFound(data.get("message", "No records found"))
        if any(marker in text for marker in _RATE_LIMIT_MARKERS):
            raise RateLimitExceeded(f"Etherscan: {result}", provider="etherscan", status=None)
        raise ProviderError(
            f"Etherscan error: {data.get('message')}: {result}", provider="etherscan"
        )

    if "error" in data:
        error = data["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        if message and any(marker in message.lower() for marker in _RATE_LIMIT_MARKERS):
            raise RateLimitExceeded(f"Etherscan: {message}", provider="etherscan", status=None)
        raise ProviderError(f"Etherscan RPC error: {message}", provider="etherscan")

    return data.get("result")


class EtherscanClient:
    """
    Usage:
        client = EtherscanClient()
        transfers = await client.get_logs_batched(contract, 18_000_000, 18_050_000)
    """

    def __init__(
        self,
        fetcher: Optional[ResilientFetch] = None,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        chain_id: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ):
        self.fetcher = fetcher or ResilientFetch(
            "etherscan",
            get_rate_limiter(
                "etherscan", settings.ETHERSCAN_RATE_LIMIT, settings.RATE_LIMIT_SAFETY_MARGIN
            ),
        )
        self.api_key = api_key if api_key is not None else settings.ETHERSCAN_API_KEY
        self.base_url = base_url or settings.ETHERSCAN_BASE_URL
        self.chain_id = chain_id or settings.ETHERSCAN_CHAIN_ID
        self.batch_delay = batch_delay if batch_delay is not None else settings.LOG_BATCH_DELAY_SEC

        # Block timestamps are immutable: cached forever, never invalidated
        self._block_timestamps: dict[int, int] = {}

    async def _call(self, **params) -> Any:
        query = {"chainid": self.chain_id, **params}
        if self.api_key:
            query["apikey"] = self.api_key
        return await self.fetcher.get_json(self.base_url, query, validate=unwrap_response)

    # ------------------------------------------------------------------
    # Single reads
    # ------------------------------------------------------------------

    async def get_current_block_number(self) -> int:
        result = await self._call(module="proxy", action="eth_blockNumber")
        return hex_to_int(result)

    async def get_block_timestamp(self, block_number: int) -> int:
        cached = self._block_timestamps.get(block_number)
        if cached is not None:
            return cached

        block = await self._call(
            module="proxy",
            action="eth_getBlockByNumber",
            tag=hex(block_number),
            boolean="false",
        )
        if not block:
            raise ProviderError(f"Etherscan: block {block_number} not found", provider="etherscan")
        timestamp = hex_to_int(block.get("timestamp"))
        self._block_timestamps[block_number] = timestamp
        return timestamp

    async def get_total_supply(self, contract: str) -> int:
        result = await self._call(module="stats", action="tokensupply", contractaddress=contract)
        return hex_to_int(result)

    async def read_contract(self, contract: str, data: str, tag: str = "latest") -> str:
        """Raw ``eth_call``; returns the hex-encoded return data."""
        return await self._call(module="proxy", action="eth_call", to=contract, data=data, tag=tag)

    async def balance_of(self, contract: str, owner: str) -> int:
        data = BALANCE_OF_SELECTOR + address_to_topic(owner)[2:]
        return hex_to_int(await self.read_contract(contract, data))

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        *,
        topics: Optional[dict[int, str]] = None,
        page: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict]:
        """
        One ``getLogs`` call for Transfer events. An empty result is [].

        ``topics`` maps an indexed position (1 = from, 2 = to) to a 32-byte
        topic value; all given topics must match.
        """
        params: dict[str, Any] = {
            "module": "logs",
            "action": "getLogs",
            "address": address,
            "fromBlock": from_block,
            "toBlock": to_block,
            "topic0": TRANSFER_TOPIC,
        }
        for position, value in sorted((topics or {}).items()):
            params[f"topic{position}"] = value
            params[f"topic0_{position}_opr"] = "and"
        if page is not None:
            params["page"] = page
            params["offset"] = offset or ETHERSCAN_RESULT_CAP

        try:
            result = await self._call(**params)
        except NoDataFound:
            return []
        return result if isinstance(result, list) else []

    async def _collect_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        batch_size_blocks: int,
        topics: Optional[dict[int, str]] = None,
    ) -> list[dict]:
        """Sequential contiguous batches over [from_block, to_block], inclusive."""
        if batch_size_blocks < 1:
            raise ValueError("batch_size_blocks must be >= 1")

        logs: list[dict] = []
        start = from_block
        batches = 0
        while start <= to_block:
            end = min(start + batch_size_blocks - 1, to_block)
            if batches:
                await asyncio.sleep(self.batch_delay)
            logs.extend(await self._fetch_range(address, start, end, topics))
            batches += 1
            start = end + 1

        logger.info(
            "Etherscan: %d logs for %s in blocks %d-%d (%d batches)",
            len(logs),
            address[:10],
            from_block,
            to_block,
            batches,
        )
        return logs

    async def _fetch_range(
        self, address: str, start: int, end: int, topics: Optional[dict[int, str]]
    ) -> list[dict]:
        logs = await self.get_logs(address, start, end, topics=topics)
        if len(logs) < ETHERSCAN_RESULT_CAP:
            return logs

        # A full page means the provider truncated: split and re-fetch
        if start == end:
            return await self._fetch_block_pages(address, start, topics)

        mid = (start + end) // 2
        logger.debug("Etherscan: result cap hit for blocks %d-%d, splitting", start, end)
        left = await self._fetch_range(address, start, mid, topics)
        await asyncio.sleep(self.batch_delay)
        right = await self._fetch_range(address, mid + 1, end, topics)
        return left + right

    async def _fetch_block_pages(
        self, address: str, block: int, topics: Optional[dict[int, str]]
    ) -> list[dict]:
        logs: list[dict] = []
        max_pages = ETHERSCAN_MAX_WINDOW // ETHERSCAN_RESULT_CAP
        for page in range(1, max_pages + 1):
            batch = await self.get_logs(
                address, block, block, topics=topics, page=page, offset=ETHERSCAN_RESULT_CAP
            )
            logs.extend(batch)
            if len(batch) < ETHERSCAN_RESULT_CAP:
                return logs
            await asyncio.sleep(self.batch_delay)

        logger.warning(
            "Etherscan: block %d has more than %d logs for %s, truncated",
            block,
            ETHERSCAN_MAX_WINDOW,
            address[:10],
        )
        return logs

    async def _fill_timestamps(self, records: list) -> list:
        """Resolve missing timestamps from block headers."""
        filled = []
        for record in records:
            if record.timestamp:
                self._block_timestamps.setdefault(record.block_number, record.timestamp)
                filled.append(record)
            else:
                timestamp = await self.get_block_timestamp(record.block_number)
                filled.append(dataclasses.replace(record, timestamp=timestamp))
        return filled

    async def get_logs_batched(
        self,
        contract: str,
        from_block: int,
        to_block: int,
        batch_size_blocks: Optional[int] = None,
        topics: Optional[dict[int, str]] = None,
    ) -> list[Transfer]:
        logs = await self._collect_logs(
            contract,
            from_block,
            to_block,
            batch_size_blocks or settings.LOG_BATCH_SIZE_BLOCKS,
            topics=topics,
        )
        transfers = [t for t in (parse_transfer_log(log) for log in logs) if t is not None]
        return await self._fill_timestamps(transfers)

    async def get_burns_batched(
        self,
        token_contract: str,
        from_block: int,
        to_block: int,
        batch_size_blocks: Optional[int] = None,
    ) -> list[BurnTransaction]:
        logs = await self._collect_logs(
            token_contract,
            from_block,
            to_block,
            batch_size_blocks or settings.LOG_BATCH_SIZE_BLOCKS,
            topics={2: ZERO_TOPIC},
        )
        burns = [b for b in (parse_burn_log(log) for log in logs) if b is not None]
        return await self._fill_timestamps(burns)

    async def get_transfers_in_date_range(
        self, days: int, contract: Optional[str] = None
    ) -> list[Transfer]:
        """Transfers over roughly the last ``days`` days, by block height."""
        contract = contract or settings.CONTRACT_ADDRESS
        current = await self.get_current_block_number()
        from_block = max(0, current - days * settings.BLOCKS_PER_DAY)
        return await self.get_logs_batched(contract, from_block, current)

    def get_stats(self) -> dict:
        return {
            "cached_block_timestamps": len(self._block_timestamps),
            **self.fetcher.get_stats(),
        }
