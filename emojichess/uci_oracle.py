"""
Stockfish behind python-chess's asyncio UCI protocol.

Usage:
  STOCKFISH_PATH=/usr/bin/stockfish uvicorn emojichess.api.main:app
"""

import logging
import os

import chess
import chess.engine

from emojichess.background import spawn
from emojichess.engine_policy import FailureCallback, ReplyCallback
from emojichess.models import BestMove

log = logging.getLogger(__name__)


class UciOracle:
    """One engine process answering one search at a time."""

    def __init__(self, path: str | None = None):
        self.path = path or os.environ.get("STOCKFISH_PATH", "stockfish")
        self.transport = None
        self.engine: chess.engine.UciProtocol | None = None
        self._game = object()

    async def start(self) -> None:
        """Launch the engine and wait for `uciok`."""
        try:
            self.transport, self.engine = await chess.engine.popen_uci(self.path)
        except FileNotFoundError:
            log.error("Stockfish not found at %s. Install it or set STOCKFISH_PATH.", self.path)
            raise
        log.info("Engine %s ready", self.engine.id.get("name", self.path))

    async def quit(self) -> None:
        if self.engine is not None:
            await self.engine.quit()
            self.engine = None

    async def search(
        self, fen: str, depth: int, skill: int, reply: ReplyCallback, fail: FailureCallback
    ) -> None:
        """Queue a search and return at once.

        `reply` receives the best move; `fail` is called instead when the engine
        crashes or answers without a usable move.
        """
        if self.engine is None:
            raise RuntimeError("Engine is not running")
        spawn(self._search(fen, depth, skill, reply, fail), name=f"search {fen}")

    async def _search(
        self, fen: str, depth: int, skill: int, reply: ReplyCallback, fail: FailureCallback
    ) -> None:
        best_move = None
        try:
            await self.engine.configure({"Skill Level": skill})
            # A fresh game object makes python-chess send ucinewgame before the position.
            self._game = object()
            result = await self.engine.play(
                chess.Board(fen),
                chess.engine.Limit(depth=depth),
                game=self._game,
                ponder=False,
            )
        except chess.engine.EngineError as e:
            # EngineTerminatedError is an EngineError too
            log.error("Engine search failed for [%s]: %r", fen, e)
        else:
            if result.move is None:
                log.warning("Engine returned no move for [%s]", fen)
            else:
                best_move = BestMove.parse(result.move.uci())
                if best_move is None:
                    log.warning("Engine move %s does not look like a bestmove", result.move.uci())

        if best_move is None:
            await fail()
        else:
            await reply(best_move)
