"""Thin wrapper over python-chess: legal moves, applying moves, game status."""

from dataclasses import dataclass

import chess
import chess.pgn

from emojichess.errors import IllegalMoveError
from emojichess.models import Move


@dataclass(frozen=True)
class Position:
    """Result of applying one move."""

    fen: str
    move: Move
    status: str | None = None

    @property
    def game_over(self) -> bool:
        return self.status is not None


def legal_moves(fen: str) -> list[Move]:
    board = chess.Board(fen)
    return [Move.from_chess(board, m) for m in board.legal_moves]


def replies_after(fen: str, move: Move) -> list[Move]:
    """Legal replies for the other side once `move` has been played."""
    board = chess.Board(fen)
    board.push(chess.Move.from_uci(move.uci))
    return [Move.from_chess(board, m) for m in board.legal_moves]


def game_status(board: chess.Board) -> str | None:
    """Human readable result, or None while the game goes on.

    Threefold repetition only sees moves pushed onto `board`; a board
    rebuilt from a FEN snapshot has no history, so repetitions spanning
    several messages go unnoticed.
    """
    if board.is_checkmate():
        winner = "Black" if board.turn == chess.WHITE else "White"
        return f"Checkmate, {winner} wins!"
    if board.is_stalemate():
        return "Stalemate, it's a draw."
    if board.is_insufficient_material():
        return "Insufficient material, it's a draw."
    if board.is_repetition(3):
        return "Threefold repetition, it's a draw."
    if board.is_fifty_moves():
        return "Fifty moves without a capture or pawn move, it's a draw."
    return None


def _apply(board: chess.Board, move: chess.Move, fen: str, text: str) -> Position:
    if move not in board.legal_moves:
        raise IllegalMoveError(fen, text)
    played = Move.from_chess(board, move)
    board.push(move)
    return Position(fen=board.fen(), move=played, status=game_status(board))


def apply_san(fen: str, san: str) -> Position:
    board = chess.Board(fen)
    try:
        move = board.parse_san(san)
    except ValueError:
        # InvalidMoveError, IllegalMoveError and AmbiguousMoveError are all ValueErrors
        raise IllegalMoveError(fen, san) from None
    return _apply(board, move, fen, san)


def apply_uci(fen: str, uci: str) -> Position:
    board = chess.Board(fen)
    try:
        move = chess.Move.from_uci(uci)
    except ValueError:
        raise IllegalMoveError(fen, uci) from None
    return _apply(board, move, fen, uci)


def build_pgn(start_fen: str, sans: list[str], headers: dict[str, str] | None = None) -> str:
    """Replay `sans` from `start_fen` and export the game as PGN text.

    The Result header comes from the replayed board, so a finished game gets
    its score and an unfinished one gets "*".
    """
    board = chess.Board(start_fen)
    game = chess.pgn.Game()
    if start_fen != chess.STARTING_FEN:
        game.setup(board)
    for key, value in (headers or {}).items():
        game.headers[key] = value
    node = game
    for san in sans:
        try:
            move = board.parse_san(san)
        except ValueError:
            raise IllegalMoveError(board.fen(), san) from None
        board.push(move)
        node = node.add_variation(move)
    game.headers["Result"] = board.result() if board.is_game_over() else "*"
    return str(game)
