"""Tests for PairScanner: PairCreated decoding, dedup, enrichment hand-off, mode fallback."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.chain.constants import PAIR_CREATED_TOPIC, WBNB
from src.chain.gateway import PairCreated, decode_pair_created, target_token
from src.models.token import STATUS_PENDING
from src.parsers.scanner import PairScanner

TOKEN = "0x1111111111111111111111111111111111111111"
OTHER = "0x3333333333333333333333333333333333333333"
PAIR = "0x2222222222222222222222222222222222222222"


def _word(address: str) -> bytes:
    return bytes(12) + bytes.fromhex(address[2:])


def _log(token0: str, token1: str, pair: str = PAIR, block: int = 123) -> dict:
    return {
        "topics": [bytes.fromhex(PAIR_CREATED_TOPIC[2:]), _word(token0), _word(token1)],
        "data": _word(pair) + (1).to_bytes(32, "big"),
        "blockNumber": block,
    }


def _gateway(reserves=(5 * 10**18, 10**24)) -> MagicMock:
    gateway = MagicMock()
    gateway.has_push = False
    gateway.get_token_info = AsyncMock(return_value=("Doge Moon", "DMOON", 18))
    gateway.get_pair_reserves = AsyncMock(return_value=reserves)
    gateway.block_number = AsyncMock(return_value=10_000)
    gateway.get_pair_created_logs = AsyncMock(return_value=[])
    return gateway


async def _stop_immediately(delay: float) -> bool:
    return True


def _scanner(repo, gateway, engine=None, broadcaster=None) -> PairScanner:
    return PairScanner(
        gateway,
        repo,
        engine or MagicMock(),
        broadcaster or MagicMock(),
        wait=_stop_immediately,
    )


class TestDecoding:
    def test_decode_pair_created(self):
        event = decode_pair_created(_log(WBNB, TOKEN))
        assert event == PairCreated(token0=WBNB, token1=TOKEN, pair=PAIR, block_number=123)

    def test_decode_accepts_hex_strings(self):
        raw = _log(TOKEN, WBNB)
        log = {
            "topics": ["0x" + t.hex() for t in raw["topics"]],
            "data": "0x" + raw["data"].hex(),
            "blockNumber": "0x7b",
        }
        event = decode_pair_created(log)
        assert event.token0 == TOKEN
        assert event.block_number == 123

    def test_malformed_log_is_none(self):
        assert decode_pair_created({"topics": [b"\x00" * 32], "data": b""}) is None

    def test_target_token_is_non_wbnb_side(self):
        assert target_token(PairCreated(WBNB, TOKEN, PAIR)) == TOKEN
        assert target_token(PairCreated(TOKEN, WBNB, PAIR)) == TOKEN
        assert target_token(PairCreated(TOKEN, OTHER, PAIR)) is None


class TestHandlePairCreated:
    @pytest.mark.asyncio
    async def test_new_token_is_stored_scheduled_and_broadcast(self, repo):
        engine = MagicMock()
        broadcaster = MagicMock()
        scanner = _scanner(repo, _gateway(), engine, broadcaster)

        token = await scanner.handle_log(_log(WBNB, TOKEN))

        assert token is not None
        stored = await repo.get_token(TOKEN)
        assert stored.symbol == "DMOON"
        assert stored.pair_address == PAIR
        assert stored.analysis_status == STATUS_PENDING
        assert stored.risk_details == {"status": "pending"}
        assert stored.initial_liquidity == Decimal(5)
        engine.schedule.assert_called_once_with(TOKEN, PAIR, 3, "new_pair")
        payload = broadcaster.broadcast.call_args.args[0]
        assert payload["type"] == "new_token"
        assert payload["token"]["address"] == TOKEN

    @pytest.mark.asyncio
    async def test_wbnb_reserve_taken_from_token1_side(self, repo):
        scanner = _scanner(repo, _gateway(reserves=(10**24, 2 * 10**18)))
        await scanner.handle_log(_log(TOKEN, WBNB))
        assert (await repo.get_token(TOKEN)).initial_liquidity == Decimal(2)

    @pytest.mark.asyncio
    async def test_first_sighting_wins(self, repo):
        engine = MagicMock()
        scanner = _scanner(repo, _gateway(), engine)

        await scanner.handle_log(_log(WBNB, TOKEN))
        assert await scanner.handle_log(_log(WBNB, TOKEN, pair=OTHER)) is None

        assert (await repo.get_token(TOKEN)).pair_address == PAIR
        engine.schedule.assert_called_once()

    @pytest.mark.asyncio
    async def test_non_wbnb_pair_ignored(self, repo):
        gateway = _gateway()
        scanner = _scanner(repo, gateway)
        assert await scanner.handle_log(_log(TOKEN, OTHER)) is None
        gateway.get_token_info.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reserve_failure_still_stores_token(self, repo):
        gateway = _gateway()
        gateway.get_pair_reserves.side_effect = ValueError("execution reverted")
        scanner = _scanner(repo, gateway)
        await scanner.handle_log(_log(WBNB, TOKEN))
        assert (await repo.get_token(TOKEN)).initial_liquidity == 0


class TestPolling:
    @pytest.mark.asyncio
    async def test_first_poll_uses_initial_window_then_advances(self, repo):
        gateway = _gateway()
        gateway.get_pair_created_logs.return_value = [_log(WBNB, TOKEN)]
        scanner = _scanner(repo, gateway)

        assert await scanner.poll_once() == 1
        gateway.get_pair_created_logs.assert_awaited_with(5_000, 10_000)
        assert scanner.last_block == 10_000

        gateway.block_number.return_value = 10_010
        gateway.get_pair_created_logs.return_value = []
        await scanner.poll_once()
        gateway.get_pair_created_logs.assert_awaited_with(10_001, 10_010)

    @pytest.mark.asyncio
    async def test_no_new_blocks_skips_query(self, repo):
        gateway = _gateway()
        scanner = _scanner(repo, gateway)
        await scanner.poll_once()
        gateway.get_pair_created_logs.reset_mock()

        await scanner.poll_once()
        gateway.get_pair_created_logs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bad_log_does_not_abort_batch(self, repo):
        gateway = _gateway()
        gateway.get_pair_created_logs.return_value = [{"topics": "garbage"}, _log(WBNB, TOKEN)]
        scanner = _scanner(repo, gateway)
        await scanner.poll_once()
        assert await repo.token_exists(TOKEN)


class TestModeSelection:
    @pytest.mark.asyncio
    async def test_polling_when_no_push_endpoint(self, repo):
        scanner = _scanner(repo, _gateway())
        await scanner.run()
        assert scanner.mode == "poll"

    @pytest.mark.asyncio
    async def test_falls_back_to_polling_when_subscription_fails(self, repo):
        gateway = _gateway()
        gateway.has_push = True

        async def _broken_subscription():
            raise ConnectionError("ws handshake failed")
            yield  # pragma: no cover

        gateway.subscribe_pair_created = _broken_subscription
        scanner = _scanner(repo, gateway)

        await scanner.run()
        assert scanner.mode == "poll"

    @pytest.mark.asyncio
    async def test_pushed_logs_are_handled(self, repo):
        gateway = _gateway()
        gateway.has_push = True

        async def _one_event():
            yield _log(WBNB, TOKEN)

        gateway.subscribe_pair_created = _one_event
        scanner = _scanner(repo, gateway)

        # Stream ends after one event → treated as a dropped socket
        assert await scanner.run_subscription() is False
        await scanner.drain_handlers()
        assert await repo.token_exists(TOKEN)
