"""Pytest configuration."""

import pytest

from emojichess.models import Move, MoveFlag, PieceKind


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: mark test as requiring a live database (skipped in CI by default)"
    )


def make_move(san: str, from_square: str, to_square: str, piece: str = "n", color: str = "w", **kwargs) -> Move:
    """Build a Move without a board; captures need `captured=`."""
    captured = kwargs.pop("captured", None)
    flags = kwargs.pop("flags", MoveFlag.NONE)
    if captured is not None:
        captured = PieceKind.from_letter(captured)
        flags |= MoveFlag.CAPTURE
    if san.endswith("+"):
        flags |= MoveFlag.CHECK
    return Move(
        from_square=from_square,
        to_square=to_square,
        piece=PieceKind.from_letter(piece),
        san=san,
        color=color,
        captured=captured,
        flags=flags,
        **kwargs,
    )


@pytest.fixture
def move_factory():
    return make_move
