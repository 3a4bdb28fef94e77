"""Tests for uci_oracle.py"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import chess
import chess.engine
import pytest

from emojichess.engine_policy import EnginePolicy
from emojichess.models import BestMove, BotProfile, EngineRequest
from emojichess.uci_oracle import UciOracle

AFTER_E4_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
ENGINE_ONLY = BotProfile("🤖", "level_0", depth=3, skill=4)


def make_engine(move="e7e5"):
    engine = MagicMock()
    engine.id = {"name": "Stockfish 16"}
    engine.configure = AsyncMock()
    engine.play = AsyncMock(return_value=chess.engine.PlayResult(chess.Move.from_uci(move), None))
    engine.quit = AsyncMock()
    return engine


@pytest.mark.asyncio
async def test_search_before_start_raises():
    oracle = UciOracle("/usr/bin/stockfish")
    with pytest.raises(RuntimeError):
        await oracle.search(AFTER_E4_FEN, 5, 5, AsyncMock(), AsyncMock())


@pytest.mark.asyncio
async def test_search_replies_with_best_move():
    engine = make_engine()
    received = []
    done = asyncio.Event()

    async def reply(best_move):
        received.append(best_move)
        done.set()
        return True

    oracle = UciOracle("/usr/bin/stockfish")
    with patch("chess.engine.popen_uci", new=AsyncMock(return_value=(MagicMock(), engine))):
        await oracle.start()
    await oracle.search(AFTER_E4_FEN, 8, 10, reply, AsyncMock())
    await asyncio.wait_for(done.wait(), timeout=1)

    assert received == [BestMove("e7", "e5")]
    engine.configure.assert_awaited_once_with({"Skill Level": 10})
    board, limit = engine.play.await_args.args
    assert board.fen() == AFTER_E4_FEN
    assert limit.depth == 8
    assert engine.play.await_args.kwargs["ponder"] is False

    await oracle.quit()
    engine.quit.assert_awaited_once()
    assert oracle.engine is None


@pytest.mark.asyncio
async def test_missing_binary_is_reported():
    oracle = UciOracle("/nowhere/stockfish")
    with patch("chess.engine.popen_uci", new=AsyncMock(side_effect=FileNotFoundError)):
        with pytest.raises(FileNotFoundError):
            await oracle.start()
    assert oracle.engine is None


def test_bestmove_line_parsing():
    assert BestMove.parse("bestmove e7e8q ponder a2a3") == BestMove("e7", "e8", "q")
    assert BestMove.parse("g1f3").uci == "g1f3"
    assert BestMove.parse("bestmove (none)") is None


@pytest.mark.parametrize(
    "play",
    [
        AsyncMock(side_effect=chess.engine.EngineTerminatedError("engine process died unexpectedly")),
        AsyncMock(side_effect=chess.engine.EngineError("unexpected engine response")),
        AsyncMock(return_value=chess.engine.PlayResult(None, None)),
    ],
    ids=["terminated", "engine-error", "no-move"],
)
@pytest.mark.asyncio
async def test_engine_failure_frees_policy_and_reports(play):
    engine = make_engine()
    engine.play = play
    reported = asyncio.Event()
    sink = MagicMock()
    sink.play_engine_move = AsyncMock(return_value=True)
    sink.report_engine_failure = AsyncMock(side_effect=lambda request: reported.set())

    oracle = UciOracle("/usr/bin/stockfish")
    with patch("chess.engine.popen_uci", new=AsyncMock(return_value=(MagicMock(), engine))):
        await oracle.start()
    policy = EnginePolicy(oracle, sink, profiles=(ENGINE_ONLY,))

    assert await policy.request_move(chess.STARTING_FEN, "alice", 0) is True
    await asyncio.wait_for(reported.wait(), timeout=1)

    assert not policy.busy
    sink.report_engine_failure.assert_awaited_once_with(EngineRequest(chess.STARTING_FEN, "alice", 0))
    sink.play_engine_move.assert_not_awaited()
