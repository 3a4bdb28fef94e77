"""
Bot move selection.

Each bot level asks Stockfish for a move at a given depth and Skill Level,
but weaker levels sometimes skip the engine and play a "naive" move instead:
a queen promotion, a capture (best material trade first) or a check, the way
a beginner grabs the first forcing move they see. Unless the bot has tunnel
vision, naive moves that leave the moved piece en prise are skipped.

The engine analyses one position at a time and its bestmove reply carries no
request id, so the policy accepts a single outstanding request and matches
every reply to it.
"""

import logging
import os
import random
from typing import Awaitable, Callable, Protocol

from emojichess.errors import IllegalMoveError
from emojichess.models import BestMove, BotProfile, EngineRequest, Move
from emojichess.move_filters import captures, checks, promotions
from emojichess.rules import legal_moves, replies_after

log = logging.getLogger(__name__)

BOT_PROFILES: tuple[BotProfile, ...] = (
    BotProfile("👶", "level_0", depth=1, skill=0, naive_probability=0.8, tunnel_vision_probability=0.5),
    BotProfile("👧", "level_1", depth=2, skill=1, naive_probability=0.6, tunnel_vision_probability=0.3),
    BotProfile("🤓", "level_2", depth=5, skill=5, naive_probability=0.4, tunnel_vision_probability=0.15),
    BotProfile("👨‍🦳", "level_3", depth=8, skill=10, naive_probability=0.2, tunnel_vision_probability=0.05),
    BotProfile("🧙‍♂️", "level_4", depth=12, skill=15, naive_probability=0.05),
    BotProfile("👽", "level_5", depth=18, skill=20),
)

ReplyCallback = Callable[[BestMove], Awaitable[bool]]
FailureCallback = Callable[[], Awaitable[bool]]


class Oracle(Protocol):
    async def search(
        self, fen: str, depth: int, skill: int, reply: ReplyCallback, fail: FailureCallback
    ) -> None: ...


class MoveSink(Protocol):
    async def play_engine_move(self, request: EngineRequest, best_move: BestMove) -> bool: ...

    async def report_engine_failure(self, request: EngineRequest) -> None: ...


def level_for_payload(payload: str, profiles: tuple[BotProfile, ...] = BOT_PROFILES) -> int | None:
    for level, profile in enumerate(profiles):
        if profile.payload == payload:
            return level
    return None


class EngineState:
    """Idle/Busy holder for the one request the engine may be working on."""

    def __init__(self):
        self.request: EngineRequest | None = None

    @property
    def busy(self) -> bool:
        return self.request is not None

    def acquire(self, request: EngineRequest) -> bool:
        if self.busy:
            return False
        self.request = request
        return True

    def release(self) -> EngineRequest | None:
        request, self.request = self.request, None
        return request


def is_hanging_move(fen: str, move: Move) -> bool:
    """True if any reply to `move` lands on its destination square.

    Defended or not, a capturable piece counts as hanging: the naive bot
    only looks one ply ahead.
    """
    return any(reply.to_square == move.to_square for reply in replies_after(fen, move))


def candidate_moves(moves: list[Move], rng: random.Random) -> list[Move]:
    """Queen promotions, then captures by net value, then checks.

    A move may appear in more than one group. Order inside each group is
    random apart from the capture ranking.
    """
    promos = promotions(moves)
    rng.shuffle(promos)
    checking = checks(moves)
    rng.shuffle(checking)
    return promos + captures(moves, rng) + checking


def naive_move(
    fen: str,
    tunnel_vision_probability: float,
    rng: random.Random,
    moves: list[Move] | None = None,
) -> Move | None:
    """Pick a forcing move the way a beginner would, or None if there is none."""
    if moves is None:
        moves = legal_moves(fen)
    candidates = candidate_moves(moves, rng)
    if not candidates:
        return None
    if rng.random() < tunnel_vision_probability:
        return rng.choice(candidates)
    for move in candidates:
        if not is_hanging_move(fen, move):
            return move
    return None


def default_rng() -> random.Random:
    seed = os.environ.get("CHESSBOT_NAIVE_SEED")
    return random.Random(int(seed)) if seed else random.Random()


class EnginePolicy:
    def __init__(
        self,
        oracle: Oracle,
        sink: MoveSink,
        profiles: tuple[BotProfile, ...] = BOT_PROFILES,
        state: EngineState | None = None,
        rng: random.Random | None = None,
    ):
        self.oracle = oracle
        self.sink = sink
        self.profiles = profiles
        self.state = state or EngineState()
        self.rng = rng or default_rng()

    @property
    def busy(self) -> bool:
        return self.state.busy

    async def request_move(self, fen: str, requester_id: str, level: int) -> bool:
        """Start finding the bot's move. False means a request is already running.

        True only means the request was accepted; the move itself reaches the
        sink later, through `on_oracle_reply`.
        """
        if not 0 <= level < len(self.profiles):
            raise ValueError(f"Unknown bot level {level}")
        request = EngineRequest(fen=fen, requester_id=requester_id, level=level)
        if not self.state.acquire(request):
            log.info("Engine busy, rejecting request from %s", requester_id)
            return False

        profile = self.profiles[level]
        try:
            if self.rng.random() < profile.naive_probability:
                move = naive_move(fen, profile.tunnel_vision_probability, self.rng)
                if move is not None:
                    log.info("Level %d plays naive move %s for %s", level, move.san, requester_id)
                    await self.on_oracle_reply(BestMove.from_move(move))
                    return True
            log.info("Evaluating position [%s] at depth %d and Skill Level %d", fen, profile.depth, profile.skill)
            await self.oracle.search(
                fen, profile.depth, profile.skill, self.on_oracle_reply, self.on_oracle_failure
            )
        except Exception:
            if self.state.request is request:
                self.state.release()
            raise
        return True

    async def on_oracle_reply(self, best_move: BestMove) -> bool:
        """Hand a best move to the sink. False if no request was waiting for it."""
        request = self.state.release()
        if request is None:
            log.debug("Ignoring engine reply %s with no request in flight", best_move.uci)
            return False

        try:
            played = await self.sink.play_engine_move(request, best_move)
        except IllegalMoveError:
            played = False
        if not played:
            log.error("Bot move %s is illegal in [%s] for %s", best_move.uci, request.fen, request.requester_id)
            await self.sink.report_engine_failure(request)
        return True

    async def on_oracle_failure(self) -> bool:
        """The engine gave no usable move. False if no request was waiting."""
        request = self.state.release()
        if request is None:
            log.debug("Ignoring engine failure with no request in flight")
            return False
        log.error("Engine found no move in [%s] for %s", request.fen, request.requester_id)
        await self.sink.report_engine_failure(request)
        return True
