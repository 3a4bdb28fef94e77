"""
Messenger event handling: one user, one game, one bot opponent.

A webhook event carries either a quick reply / postback payload or free
text. Payloads come in these shapes:

  Move|<SAN>              play a move
  Tree|<literal>|<path>   open a nested move menu (see move_menu)
  get_available_moves     show the first move menu for the live position
  Menu|<option>           non-move menus: new game, flip board, help...
  level_<n>               start a new game against bot level n
"""

import asyncio
import logging
from typing import Callable

from kombu.exceptions import OperationalError

from emojichess.celery_app import archive_game_task
from emojichess.chat_interface import ChatInterface
from emojichess.db import get_connection, get_game, init_schema, save_game, set_white_pov
from emojichess.emoji_board import render_board
from emojichess.engine_policy import BOT_PROFILES, EnginePolicy, Oracle, level_for_payload
from emojichess.errors import ChessBotError, IllegalMoveError, MalformedPayloadError
from emojichess.menu import (
    BOT_MOVE_OPTION,
    HELP_TEXT,
    MENU_PREFIX,
    bot_busy_menu,
    help_menu,
    level_menu,
    root_menu,
)
from emojichess.models import BestMove, EngineRequest, Game, MenuResult
from emojichess.move_menu import (
    AVAILABLE_MOVES_PAYLOAD,
    MOVE_PREFIX,
    TREE_PREFIX,
    decode,
    encode,
    format_move,
    parse_tree_payload,
)
from emojichess.rules import apply_san, apply_uci, build_pgn, legal_moves

log = logging.getLogger(__name__)

RETRY_TEXT = "Something went wrong, please try again."
ENGINE_FAILURE_TEXT = "Internal error: the bot could not play its move. Type \"menu\" to start a new game."

# Delivery pacing, in seconds
BOARD_DELAY = 1.0
MOVES_DELAY = 1.5
GAME_OVER_DELAY = 0.5


def _enqueue_archive(sender_id: str) -> None:
    try:
        archive_game_task.delay(sender_id)
    except OperationalError as e:
        log.error("Could not queue archiving of %s's game: %s", sender_id, e)


def extract_event(event: dict) -> tuple[str | None, str | None, str | None]:
    """Return (sender_id, payload, text) from one messaging event."""
    sender_id = event.get("sender", {}).get("id")
    message = event.get("message") or {}
    if message.get("is_echo"):
        return sender_id, None, None
    payload = (message.get("quick_reply") or {}).get("payload")
    if payload is None:
        payload = (event.get("postback") or {}).get("payload")
    text = message.get("text")
    return sender_id, payload, text.strip() if text else None


class GameService:
    def __init__(
        self,
        chat: ChatInterface,
        oracle: Oracle,
        connect=get_connection,
        archive: Callable[[str], None] = _enqueue_archive,
        policy: EnginePolicy | None = None,
    ):
        self.chat = chat
        self.oracle = oracle
        self.connect = connect
        self.archive = archive
        self.policy = policy or EnginePolicy(oracle, self)

    async def start(self) -> None:
        async with self.connect() as conn:
            await init_schema(conn)
        await self.oracle.start()

    async def stop(self) -> None:
        await self.oracle.quit()
        await self.chat.aclose()

    async def send(self, sender_id: str, menu: MenuResult, delay: float = 0) -> bool:
        return await self.chat.send_response(sender_id, menu.message, delay, menu.quick_replies())

    async def handle_event(self, event: dict) -> None:
        sender_id, payload, text = extract_event(event)
        if not sender_id:
            log.warning("Dropping event without sender: %s", event)
            return
        log.info("Event from %s: payload=%r text=%r", sender_id, payload and payload[:60], text)
        try:
            if payload:
                await self.handle_payload(sender_id, payload)
            elif text:
                await self.handle_text(sender_id, text)
        except ChessBotError as e:
            log.warning("Could not handle event from %s: %s", sender_id, e)
            await self.chat.send_response(sender_id, RETRY_TEXT)

    async def handle_payload(self, sender_id: str, payload: str) -> None:
        prefix, _, rest = payload.partition("|")
        if prefix == MOVE_PREFIX and rest:
            await self.play_user_move(sender_id, rest)
        elif prefix == TREE_PREFIX:
            literal, path = parse_tree_payload(payload)
            await self.send(sender_id, decode(literal, path))
        elif payload == AVAILABLE_MOVES_PAYLOAD:
            await self.send_available_moves(sender_id)
        elif prefix == MENU_PREFIX:
            await self.handle_menu(sender_id, rest)
        else:
            level = level_for_payload(payload)
            if level is None:
                raise MalformedPayloadError(f"Unknown payload {payload[:80]!r}")
            await self.new_game(sender_id, level)

    async def handle_text(self, sender_id: str, text: str) -> None:
        if text.lower() in ("menu", "help", "start"):
            await self.send(sender_id, root_menu())
            return
        await self.play_user_move(sender_id, text)

    async def handle_menu(self, sender_id: str, option: str) -> None:
        if option == "new_game":
            await self.send(sender_id, level_menu())
        elif option == "help_menu":
            await self.send(sender_id, help_menu())
        elif option in HELP_TEXT:
            await self.chat.send_response(sender_id, HELP_TEXT[option])
        elif option == "flip_board":
            await self.flip_board(sender_id)
        elif option == "download_game":
            await self.download_game(sender_id)
        elif option == BOT_MOVE_OPTION:
            game = await self.load_game(sender_id)
            if game is not None and not game.is_over and not game.player_to_move:
                await self.request_bot_move(game)
        else:
            raise MalformedPayloadError(f"Unknown menu option {option!r}")

    async def load_game(self, sender_id: str) -> Game | None:
        async with self.connect() as conn:
            game = await get_game(conn, sender_id)
        if game is None:
            await self.chat.send_response(sender_id, "You have no game in progress.")
            await self.send(sender_id, root_menu())
        return game

    async def new_game(self, sender_id: str, level: int) -> None:
        game = Game(sender_id=sender_id, bot_level=level)
        async with self.connect() as conn:
            game = await save_game(conn, game)
        profile = BOT_PROFILES[level]
        board = render_board(game.fen, white_pov=game.white_pov)
        await self.chat.send_response(sender_id, f"New game against {profile.emoji}! You play White.\n\n{board}")
        await self.send_available_moves(sender_id, game.fen, BOARD_DELAY)

    async def send_available_moves(self, sender_id: str, fen: str | None = None, delay: float = 0) -> None:
        if fen is None:
            game = await self.load_game(sender_id)
            if game is None:
                return
            if game.is_over:
                await self.chat.send_response(sender_id, f"Game over! {game.status}")
                return
            fen = game.fen
        await self.send(sender_id, encode(legal_moves(fen)), delay)

    async def flip_board(self, sender_id: str) -> None:
        game = await self.load_game(sender_id)
        if game is None:
            return
        game.white_pov = not game.white_pov
        async with self.connect() as conn:
            await set_white_pov(conn, sender_id, game.white_pov)
        await self.chat.send_response(sender_id, render_board(game.fen, game.last_from, game.white_pov))

    async def download_game(self, sender_id: str) -> None:
        game = await self.load_game(sender_id)
        if game is None:
            return
        profile = BOT_PROFILES[game.bot_level]
        pgn = build_pgn(
            game.start_fen,
            game.moves,
            {"Event": "EmojiChess", "White": "You", "Black": f"{profile.emoji} (level {game.bot_level})"},
        )
        await self.chat.send_response(sender_id, pgn)

    async def play_user_move(self, sender_id: str, san: str) -> None:
        game = await self.load_game(sender_id)
        if game is None:
            return
        if game.is_over:
            await self.chat.send_response(sender_id, f"Game over! {game.status}")
            await self.send(sender_id, root_menu())
            return
        if not game.player_to_move:
            await self.chat.send_response(sender_id, "Hold on, it's the bot's turn.")
            return

        try:
            position = apply_san(game.fen, san)
        except IllegalMoveError:
            await self.chat.send_response(sender_id, f"{san} is not a legal move here.")
            await self.send_available_moves(sender_id, game.fen)
            return

        game.fen = position.fen
        game.moves.append(position.move.san)
        game.last_from = position.move.from_square
        game.status = position.status
        async with self.connect() as conn:
            await save_game(conn, game)

        board = render_board(game.fen, game.last_from, game.white_pov)
        await self.chat.send_response(sender_id, f"Your move: {format_move(position.move)}\n\n{board}")
        if position.game_over:
            await self.finish_game(game)
            return
        await self.request_bot_move(game)

    async def request_bot_move(self, game: Game) -> None:
        accepted = await self.policy.request_move(game.fen, game.sender_id, game.bot_level)
        if not accepted:
            await self.send(game.sender_id, bot_busy_menu())

    async def finish_game(self, game: Game, delay: float = GAME_OVER_DELAY) -> None:
        await self.chat.send_response(game.sender_id, f"Game over! {game.status}", delay)
        await asyncio.to_thread(self.archive, game.sender_id)

    async def play_engine_move(self, request: EngineRequest, best_move: BestMove) -> bool:
        """Apply the bot's move. False if it is illegal in the recorded position."""
        async with self.connect() as conn:
            game = await get_game(conn, request.requester_id)
            if game is None or game.fen != request.fen:
                log.warning("Game of %s changed while the bot was thinking, dropping %s",
                            request.requester_id, best_move.uci)
                return True
            position = apply_uci(game.fen, best_move.uci)
            game.fen = position.fen
            game.moves.append(position.move.san)
            game.last_from = position.move.from_square
            game.status = position.status
            await save_game(conn, game)

        profile = BOT_PROFILES[request.level]
        board = render_board(game.fen, game.last_from, game.white_pov)
        await self.chat.send_response(
            game.sender_id,
            f"{profile.emoji}'s move: {format_move(position.move)}\n\n{board}",
            BOARD_DELAY,
        )
        if position.game_over:
            await self.finish_game(game)
        else:
            await self.send_available_moves(game.sender_id, game.fen, MOVES_DELAY)
        return True

    async def report_engine_failure(self, request: EngineRequest) -> None:
        await self.chat.send_response(request.requester_id, ENGINE_FAILURE_TEXT)

