"""Move classification shared by the move menus and the naive bot."""

import random
from collections import defaultdict

from emojichess.models import Move, PieceKind


def net_value(move: Move) -> int:
    """Captured piece value minus capturing piece value (pawn takes queen = +8)."""
    if move.captured is None:
        return 0
    return move.captured.points - move.piece.points


def promotions(moves: list[Move], queen_only: bool = True) -> list[Move]:
    return [
        m for m in moves
        if m.promotion is not None and (not queen_only or m.promotion is PieceKind.QUEEN)
    ]


def captures(moves: list[Move], rng: random.Random | None = None) -> list[Move]:
    """Captures (en passant included), best net value first.

    With `rng`, captures of equal net value come out in random order.
    """
    found = [m for m in moves if m.is_capture]
    if rng is not None:
        rng.shuffle(found)
    return sorted(found, key=net_value, reverse=True)


def checks(moves: list[Move]) -> list[Move]:
    return [m for m in moves if m.is_check or m.san.endswith(("+", "#"))]


def by_piece(moves: list[Move]) -> dict[PieceKind, list[Move]]:
    """Group moves by piece kind, in pawn..king order, skipping empty groups."""
    groups: dict[PieceKind, list[Move]] = defaultdict(list)
    for move in moves:
        kind = move.piece if isinstance(move.piece, PieceKind) else PieceKind.from_letter(str(move.piece))
        groups[kind].append(move)
    return {kind: groups[kind] for kind in PieceKind if groups[kind]}


def by_origin(moves: list[Move]) -> dict[str, list[Move]]:
    groups: dict[str, list[Move]] = {}
    for move in moves:
        groups.setdefault(move.from_square, []).append(move)
    return groups


def by_destination_file(moves: list[Move]) -> dict[str, list[Move]]:
    groups: dict[str, list[Move]] = {}
    for move in moves:
        groups.setdefault(move.to_square[0], []).append(move)
    return groups
