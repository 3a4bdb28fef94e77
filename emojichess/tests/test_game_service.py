"""Tests for game_service.py"""

import dataclasses
import random
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import chess
import pytest

from emojichess import game_service
from emojichess.game_service import ENGINE_FAILURE_TEXT, RETRY_TEXT, GameService, extract_event
from emojichess.menu import BOT_BUSY_TEXT, menu_payload
from emojichess.models import BestMove, EngineRequest, Game
from emojichess.move_menu import PICK_PIECE, decode, encode, parse_tree_payload
from emojichess.rules import legal_moves

AFTER_E4_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
SCHOLARS_MATE_FEN = "r1bqkb1r/pppp1ppp/2n2n2/4p2Q/2B1P3/8/PPPP1PPP/RNB1K1NR w KQkq - 4 4"


class FakeChat:
    def __init__(self):
        self.sent = []

    async def send_response(self, sender_id, message, send_delay=0, quick_replies=None):
        self.sent.append((sender_id, message, quick_replies))
        return True

    async def aclose(self):
        pass

    @property
    def messages(self):
        return [message for _, message, _ in self.sent]


class FakeStore:
    """In-memory stand-in for the games table."""

    def __init__(self):
        self.games = {}

    async def get_game(self, conn, sender_id):
        game = self.games.get(sender_id)
        return dataclasses.replace(game, moves=list(game.moves)) if game else None

    async def save_game(self, conn, game):
        self.games[game.sender_id] = dataclasses.replace(game, moves=list(game.moves))
        return await self.get_game(conn, game.sender_id)

    async def set_white_pov(self, conn, sender_id, white_pov):
        self.games[sender_id].white_pov = white_pov


@asynccontextmanager
async def fake_connect():
    yield MagicMock()


@pytest.fixture
def store(monkeypatch):
    store = FakeStore()
    monkeypatch.setattr(game_service, "get_game", store.get_game)
    monkeypatch.setattr(game_service, "save_game", store.save_game)
    monkeypatch.setattr(game_service, "set_white_pov", store.set_white_pov)
    return store


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def policy():
    policy = MagicMock()
    policy.request_move = AsyncMock(return_value=True)
    return policy


@pytest.fixture
def archive():
    return MagicMock()


@pytest.fixture
def service(chat, policy, archive, store):
    return GameService(chat, oracle=MagicMock(), connect=fake_connect, archive=archive, policy=policy)


def text_event(text, sender_id="u1"):
    return {"sender": {"id": sender_id}, "message": {"mid": "m1", "text": text}}


def payload_event(payload, sender_id="u1"):
    return {"sender": {"id": sender_id}, "message": {"text": "tap", "quick_reply": {"payload": payload}}}


def test_extract_event_prefers_quick_reply_payload():
    assert extract_event(payload_event("Move|e4")) == ("u1", "Move|e4", "tap")
    assert extract_event(text_event("  e4 ")) == ("u1", None, "e4")
    postback = {"sender": {"id": "u2"}, "postback": {"title": "Start", "payload": "Menu|new_game"}}
    assert extract_event(postback) == ("u2", "Menu|new_game", None)


def test_extract_event_ignores_echoes():
    event = {"sender": {"id": "page"}, "message": {"is_echo": True, "text": "Your move"}}
    assert extract_event(event) == ("page", None, None)


@pytest.mark.asyncio
async def test_level_payload_starts_new_game(service, chat, store):
    await service.handle_event(payload_event("level_2"))

    game = store.games["u1"]
    assert game.bot_level == 2
    assert game.fen == chess.STARTING_FEN
    assert chat.messages[0].startswith("New game against 🤓! You play White.")
    _, message, quick_replies = chat.sent[1]
    assert message == PICK_PIECE
    assert 0 < len(quick_replies) <= 12


@pytest.mark.asyncio
async def test_tree_payload_opens_next_layer(service, chat, store):
    first = encode(legal_moves(chess.STARTING_FEN)).options[0]
    await service.handle_event(payload_event(first.payload))

    expected = decode(*parse_tree_payload(first.payload))
    _, message, quick_replies = chat.sent[-1]
    assert message == expected.message
    assert quick_replies == expected.quick_replies()


@pytest.mark.asyncio
async def test_user_move_is_saved_and_bot_is_asked(service, chat, store, policy):
    store.games["u1"] = Game(sender_id="u1", bot_level=1)
    await service.handle_event(text_event("e4"))

    game = store.games["u1"]
    assert game.fen == AFTER_E4_FEN
    assert game.moves == ["e4"]
    assert game.last_from == "e2"
    assert chat.messages[0].startswith("Your move: e4")
    policy.request_move.assert_awaited_once_with(AFTER_E4_FEN, "u1", 1)


@pytest.mark.asyncio
async def test_move_payload_is_played(service, chat, store):
    store.games["u1"] = Game(sender_id="u1")
    await service.handle_event(payload_event("Move|Nf3"))
    assert chat.messages[0].startswith("Your move: 🦄f3")
    assert store.games["u1"].moves == ["Nf3"]


@pytest.mark.asyncio
async def test_illegal_text_move_shows_moves_again(service, chat, store, policy):
    store.games["u1"] = Game(sender_id="u1")
    await service.handle_event(text_event("Ke2"))

    assert chat.messages[0] == "Ke2 is not a legal move here."
    assert chat.messages[1] == PICK_PIECE
    assert store.games["u1"].moves == []
    policy.request_move.assert_not_awaited()


@pytest.mark.asyncio
async def test_move_on_bots_turn_is_refused(service, chat, store):
    store.games["u1"] = Game(sender_id="u1", fen=AFTER_E4_FEN, moves=["e4"])
    await service.handle_event(text_event("e5"))
    assert chat.messages == ["Hold on, it's the bot's turn."]


@pytest.mark.asyncio
async def test_busy_engine_offers_retry(service, chat, store, policy):
    policy.request_move.return_value = False
    store.games["u1"] = Game(sender_id="u1")
    await service.handle_event(text_event("d4"))

    _, message, quick_replies = chat.sent[-1]
    assert message == BOT_BUSY_TEXT
    assert quick_replies[0]["payload"] == menu_payload("bot_move")


@pytest.mark.asyncio
async def test_bot_move_option_asks_again(service, store, policy):
    store.games["u1"] = Game(sender_id="u1", fen=AFTER_E4_FEN, moves=["e4"], bot_level=3)
    await service.handle_event(payload_event(menu_payload("bot_move")))
    policy.request_move.assert_awaited_once_with(AFTER_E4_FEN, "u1", 3)


@pytest.mark.asyncio
async def test_engine_move_is_played_and_moves_offered(service, chat, store):
    store.games["u1"] = Game(sender_id="u1", fen=AFTER_E4_FEN, moves=["e4"], last_from="e2")

    played = await service.play_engine_move(EngineRequest(AFTER_E4_FEN, "u1", 0), BestMove("e7", "e5"))

    assert played is True
    game = store.games["u1"]
    assert game.moves == ["e4", "e5"]
    assert game.last_from == "e7"
    assert chat.messages[0].startswith("👶's move: e5")
    assert chat.messages[1] == PICK_PIECE


@pytest.mark.asyncio
async def test_engine_move_for_changed_game_is_dropped(service, chat, store):
    store.games["u1"] = Game(sender_id="u1")
    played = await service.play_engine_move(EngineRequest(AFTER_E4_FEN, "u1", 0), BestMove("e7", "e5"))
    assert played is True
    assert chat.sent == []
    assert store.games["u1"].moves == []


@pytest.mark.asyncio
async def test_illegal_engine_move_is_reported(chat, store, archive):
    oracle = MagicMock()
    oracle.search = AsyncMock()
    service = GameService(chat, oracle=oracle, connect=fake_connect, archive=archive)
    service.policy.rng = random.Random(0)
    store.games["u1"] = Game(sender_id="u1", fen=AFTER_E4_FEN, moves=["e4"])

    assert await service.policy.request_move(AFTER_E4_FEN, "u1", 0) is True
    oracle.search.assert_awaited_once()
    await service.policy.on_oracle_reply(BestMove("e7", "e4"))

    assert chat.messages == [ENGINE_FAILURE_TEXT]
    assert store.games["u1"].moves == ["e4"]
    assert not service.policy.busy


@pytest.mark.asyncio
async def test_checkmate_finishes_and_archives(service, chat, store, policy, archive):
    store.games["u1"] = Game(sender_id="u1", fen=SCHOLARS_MATE_FEN, moves=["e4", "e5", "Bc4", "Nc6", "Qh5", "Nf6"])
    await service.handle_event(text_event("Qxf7#"))

    game = store.games["u1"]
    assert game.status == "Checkmate, White wins!"
    assert chat.messages[-1] == "Game over! Checkmate, White wins!"
    archive.assert_called_once_with("u1")
    policy.request_move.assert_not_awaited()


@pytest.mark.asyncio
async def test_move_after_game_over_shows_menu(service, chat, store):
    store.games["u1"] = Game(sender_id="u1", status="Stalemate, it's a draw.")
    await service.handle_event(text_event("e4"))
    assert chat.messages == ["Game over! Stalemate, it's a draw.", "What would you like to do?"]


@pytest.mark.asyncio
async def test_no_game_in_progress(service, chat, store):
    await service.handle_event(text_event("e4"))
    assert chat.messages == ["You have no game in progress.", "What would you like to do?"]


@pytest.mark.asyncio
async def test_malformed_payload_asks_to_retry(service, chat, store):
    await service.handle_event(payload_event("Tree|[{\"broken\"|0"))
    assert chat.messages == [RETRY_TEXT]


@pytest.mark.asyncio
async def test_unknown_payload_asks_to_retry(service, chat, store):
    await service.handle_event(payload_event("level_99"))
    assert chat.messages == [RETRY_TEXT]


@pytest.mark.asyncio
async def test_menu_text_shows_root_menu(service, chat, store):
    await service.handle_event(text_event("Menu"))
    _, message, quick_replies = chat.sent[0]
    assert message == "What would you like to do?"
    assert [q["payload"] for q in quick_replies] == [
        "Menu|new_game", "Menu|flip_board", "Menu|download_game", "Menu|help_menu",
    ]


@pytest.mark.asyncio
async def test_new_game_menu_lists_levels(service, chat, store):
    await service.handle_event(payload_event(menu_payload("new_game")))
    _, _, quick_replies = chat.sent[0]
    assert [q["payload"] for q in quick_replies] == [f"level_{i}" for i in range(6)]


@pytest.mark.asyncio
async def test_flip_board(service, chat, store):
    store.games["u1"] = Game(sender_id="u1")
    await service.handle_event(payload_event(menu_payload("flip_board")))
    assert store.games["u1"].white_pov is False
    assert chat.messages[0].startswith("1️⃣")


@pytest.mark.asyncio
async def test_download_game_sends_pgn(service, chat, store):
    store.games["u1"] = Game(sender_id="u1", fen=AFTER_E4_FEN, moves=["e4"], bot_level=5)
    await service.handle_event(payload_event(menu_payload("download_game")))
    pgn = chat.messages[0]
    assert '[Event "EmojiChess"]' in pgn
    assert '[Black "👽 (level 5)"]' in pgn
    assert "1. e4 *" in pgn


@pytest.mark.asyncio
async def test_help_topics(service, chat, store):
    await service.handle_event(payload_event(menu_payload("help_menu")))
    await service.handle_event(payload_event(menu_payload("about")))
    assert chat.messages[0] == "What do you need help with?"
    assert "EmojiChess" in chat.messages[1]


@pytest.mark.asyncio
async def test_start_creates_schema_then_engine(chat, monkeypatch):
    init_schema = AsyncMock()
    monkeypatch.setattr(game_service, "init_schema", init_schema)
    oracle = MagicMock()
    oracle.start = AsyncMock()
    oracle.quit = AsyncMock()
    service = GameService(chat, oracle=oracle, connect=fake_connect)

    await service.start()
    await service.stop()

    init_schema.assert_awaited_once()
    oracle.start.assert_awaited_once()
    oracle.quit.assert_awaited_once()
