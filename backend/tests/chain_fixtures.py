"""Builders for raw explorer logs and a fake getLogs backend."""

from vibescan.services.chain.logs import TRANSFER_TOPIC, ZERO_ADDRESS, address_to_topic

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
STRATEGY = "0x" + "5e" * 20
COLLECTION = "0x" + "77" * 20


def token_topic(token_id: int) -> str:
    return "0x" + format(token_id, "064x")


def transfer_log(
    block: int,
    index: int = 0,
    token_id: int = 1,
    from_addr: str = ALICE,
    to_addr: str = BOB,
    timestamp=None,
    tx_hash=None,
) -> dict:
    return {
        "address": COLLECTION,
        "transactionHash": tx_hash or "0x" + format(block, "032x") + format(index, "032x"),
        "blockNumber": hex(block),
        "timeStamp": hex(timestamp if timestamp is not None else 1_700_000_000 + block),
        "logIndex": hex(index),
        "topics": [
            TRANSFER_TOPIC,
            address_to_topic(from_addr),
            address_to_topic(to_addr),
            token_topic(token_id),
        ],
        "data": "0x",
    }


def burn_log(block: int, amount_tokens: int, index: int = 0, timestamp=None) -> dict:
    return {
        "address": STRATEGY,
        "transactionHash": "0x" + format(block, "032x") + format(index, "032x"),
        "blockNumber": hex(block),
        "timeStamp": hex(timestamp if timestamp is not None else 1_700_000_000 + block),
        "logIndex": hex(index),
        "topics": [TRANSFER_TOPIC, address_to_topic(ALICE), address_to_topic(ZERO_ADDRESS)],
        "data": hex(amount_tokens * 10 ** 18),
    }


class FakeExplorer:
    """
    Serves getLogs over an in-memory list of logs, truncating at the
    explorer's 1000-record cap and honouring page/offset.
    """

    def __init__(self, logs=(), head_block: int = 0, block_timestamps=None):
        self.logs = list(logs)
        self.head_block = head_block
        self.block_timestamps = block_timestamps or {}
        self.calls: list[dict] = []

    async def send(self, url, params):
        self.calls.append(dict(params))
        action = params["action"]
        if action == "getLogs":
            return 200, {}, self._get_logs(params)
        if action == "eth_blockNumber":
            return 200, {}, {"jsonrpc": "2.0", "id": 1, "result": hex(self.head_block)}
        if action == "eth_getBlockByNumber":
            block = int(params["tag"], 16)
            return 200, {}, {
                "jsonrpc": "2.0",
                "id": 1,
                "result": {"number": params["tag"], "timestamp": hex(self.block_timestamps[block])},
            }
        raise AssertionError(f"unexpected action {action}")

    def _get_logs(self, params):
        start, end = int(params["fromBlock"]), int(params["toBlock"])
        matching = [
            log
            for log in self.logs
            if start <= int(log["blockNumber"], 16) <= end
            and log["address"] == params["address"]
            and all(
                log["topics"][pos] == params[f"topic{pos}"]
                for pos in (1, 2)
                if f"topic{pos}" in params
            )
        ]
        if "page" in params:
            offset = params["offset"]
            matching = matching[(params["page"] - 1) * offset : params["page"] * offset]
        else:
            matching = matching[:1000]
        if not matching:
            return {"status": "0", "message": "No records found", "result": []}
        return {"status": "1", "message": "OK", "result": matching}

    def log_calls(self):
        return [c for c in self.calls if c["action"] == "getLogs"]
