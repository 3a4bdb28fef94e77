"""Data models for the EmojiChess Messenger bot."""

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

import chess

from emojichess.errors import UnknownPieceError

Color = Literal["w", "b"]

BESTMOVE_RE = re.compile(r"^(?:bestmove )?([a-h][1-8])([a-h][1-8])([qrbn])?")


class PieceKind(enum.Enum):
    """The six piece kinds, keyed by their lowercase SAN/FEN letter."""

    PAWN = "p"
    KNIGHT = "n"
    BISHOP = "b"
    ROOK = "r"
    QUEEN = "q"
    KING = "k"

    @classmethod
    def from_letter(cls, letter: str) -> "PieceKind":
        try:
            return cls(letter.lower())
        except ValueError:
            raise UnknownPieceError(f"Unknown piece kind {letter!r}") from None

    @property
    def title(self) -> str:
        return self.name.capitalize()

    @property
    def points(self) -> int:
        return PIECE_VALUES[self]


PIECE_VALUES = {
    PieceKind.PAWN: 1,
    PieceKind.KNIGHT: 3,
    PieceKind.BISHOP: 3,
    PieceKind.ROOK: 5,
    PieceKind.QUEEN: 9,
    PieceKind.KING: 99,
}


class MoveFlag(enum.Flag):
    NONE = 0
    CAPTURE = enum.auto()
    EN_PASSANT = enum.auto()
    PROMOTION = enum.auto()
    CHECK = enum.auto()
    CHECKMATE = enum.auto()
    CASTLE = enum.auto()


@dataclass(frozen=True)
class Move:
    """A legal move as produced by the rules engine."""

    from_square: str
    to_square: str
    piece: PieceKind
    san: str
    color: Color = "w"
    captured: PieceKind | None = None
    promotion: PieceKind | None = None
    flags: MoveFlag = MoveFlag.NONE

    @property
    def is_capture(self) -> bool:
        return bool(self.flags & (MoveFlag.CAPTURE | MoveFlag.EN_PASSANT))

    @property
    def is_check(self) -> bool:
        return bool(self.flags & (MoveFlag.CHECK | MoveFlag.CHECKMATE))

    @property
    def is_castle(self) -> bool:
        return bool(self.flags & MoveFlag.CASTLE)

    @property
    def uci(self) -> str:
        promo = self.promotion.value if self.promotion else ""
        return f"{self.from_square}{self.to_square}{promo}"

    @classmethod
    def from_chess(cls, board: chess.Board, move: chess.Move) -> "Move":
        """Describe `move` as played from `board` (the position before the move)."""
        piece_type = board.piece_type_at(move.from_square)
        if piece_type is None:
            raise UnknownPieceError(f"No piece on {chess.square_name(move.from_square)}")
        piece = PieceKind.from_letter(chess.piece_symbol(piece_type))

        flags = MoveFlag.NONE
        captured = None
        if board.is_en_passant(move):
            flags |= MoveFlag.EN_PASSANT
            captured = PieceKind.PAWN
        elif board.is_capture(move):
            flags |= MoveFlag.CAPTURE
            captured = PieceKind.from_letter(chess.piece_symbol(board.piece_type_at(move.to_square)))
        promotion = None
        if move.promotion:
            flags |= MoveFlag.PROMOTION
            promotion = PieceKind.from_letter(chess.piece_symbol(move.promotion))
        if board.is_castling(move):
            flags |= MoveFlag.CASTLE

        san = board.san(move)
        if san.endswith("#"):
            flags |= MoveFlag.CHECKMATE
        elif san.endswith("+"):
            flags |= MoveFlag.CHECK

        return cls(
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            piece=piece,
            san=san,
            color="w" if board.turn == chess.WHITE else "b",
            captured=captured,
            promotion=promotion,
            flags=flags,
        )


@dataclass(frozen=True)
class BestMove:
    """A move proposed for the bot: from the engine's bestmove line or the naive picker."""

    from_square: str
    to_square: str
    promotion: str | None = None

    @property
    def uci(self) -> str:
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"

    @classmethod
    def parse(cls, line: str) -> "BestMove | None":
        match = BESTMOVE_RE.match(line.strip())
        if not match:
            return None
        return cls(match.group(1), match.group(2), match.group(3))

    @classmethod
    def from_move(cls, move: Move) -> "BestMove":
        return cls(move.from_square, move.to_square, move.promotion.value if move.promotion else None)


@dataclass(frozen=True)
class QuickReply:
    """One Messenger quick reply option."""

    title: str
    payload: str

    def to_dict(self) -> dict:
        return {"content_type": "text", "title": self.title, "payload": self.payload}


@dataclass
class MenuResult:
    """Message text plus the quick replies offered beneath it."""

    message: str
    options: list[QuickReply] = field(default_factory=list)

    def quick_replies(self) -> list[dict]:
        return [o.to_dict() for o in self.options]


@dataclass(frozen=True)
class BotProfile:
    """One bot difficulty level."""

    emoji: str
    payload: str
    depth: int
    skill: int
    naive_probability: float = 0.0
    tunnel_vision_probability: float = 0.0


@dataclass(frozen=True)
class EngineRequest:
    """The single move request the engine is working on."""

    fen: str
    requester_id: str
    level: int


@dataclass
class Game:
    """One row of the `games` table: a user's game in progress."""

    sender_id: str
    start_fen: str = chess.STARTING_FEN
    fen: str = chess.STARTING_FEN
    moves: list[str] = field(default_factory=list)
    bot_level: int = 0
    player_color: Color = "w"
    white_pov: bool = True
    last_from: str | None = None
    status: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_over(self) -> bool:
        return self.status is not None

    @property
    def player_to_move(self) -> bool:
        return self.fen.split()[1] == self.player_color
