"""Exceptions raised by the EmojiChess core."""


class ChessBotError(Exception):
    """Base class for errors the game service turns into a retry reply."""


class EmptyMoveListError(ChessBotError, ValueError):
    pass


class UnknownPieceError(ChessBotError, ValueError):
    pass


class CorruptPositionError(ChessBotError):
    """A position produced more piece instances than one menu layer holds."""


class MalformedPayloadError(ChessBotError, ValueError):
    """A quick reply payload does not decode against its own tree."""


class IllegalMoveError(ChessBotError):
    def __init__(self, fen: str, move: str):
        super().__init__(f"Illegal move {move!r} in position {fen}")
        self.fen = fen
        self.move = move
