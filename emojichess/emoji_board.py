"""Render positions as emoji boards for Messenger."""

import chess

from emojichess.models import Color, PieceKind

PIECE_GLYPHS: dict[Color, dict[PieceKind, str]] = {
    "w": {
        PieceKind.PAWN: "🐣",
        PieceKind.KNIGHT: "🦄",
        PieceKind.BISHOP: "🏃",
        PieceKind.ROOK: "🏰",
        PieceKind.QUEEN: "👸",
        PieceKind.KING: "🤴",
    },
    "b": {
        PieceKind.PAWN: "♟",
        PieceKind.KNIGHT: "🐴",
        PieceKind.BISHOP: "🐘",
        PieceKind.ROOK: "🗿",
        PieceKind.QUEEN: "👩‍✈️",
        PieceKind.KING: "🤵",
    },
}

RANK_GLYPHS = ["8️⃣", "7️⃣", "6️⃣", "5️⃣", "4️⃣", "3️⃣", "2️⃣", "1️⃣"]
FILE_GLYPHS = ["🇦", "🇧", "🇨", "🇩", "🇪", "🇫", "🇬", "🇭"]
LIGHT_TILE = "◽"
DARK_TILE = "◾"
ACTIVE_LIGHT_TILE = "🔲"
ACTIVE_DARK_TILE = "🔳"
ORIGIN = "🏁"
# Keeps Messenger from fusing neighbouring regional indicators into flags.
ZERO_WIDTH = "\u200b"
BACK = "🔙"


def glyph(color: Color, kind: PieceKind) -> str:
    return PIECE_GLYPHS[color][kind]


def render_board(fen: str, last_from: str | None = None, white_pov: bool = True) -> str:
    """Return the position as 9 lines of emoji: 8 ranks then the file axis.

    `last_from` is the origin square of the previous move and is drawn as an
    active tile. With `white_pov=False` the board is shown from Black's side.
    """
    board = chess.Board(fen)
    rows = []
    for i in range(8):  # rank 8 down to rank 1
        row = []
        for j in range(8):
            piece = board.piece_at(chess.square(j, 7 - i))
            if piece is None:
                row.append(DARK_TILE if (i % 2) ^ (j % 2) else LIGHT_TILE)
            else:
                color = "w" if piece.color == chess.WHITE else "b"
                row.append(glyph(color, PieceKind.from_letter(piece.symbol())))
        rows.append(row)

    if last_from is not None:
        try:
            square = chess.parse_square(last_from)
        except ValueError:
            raise ValueError(f"Unexpected last move origin {last_from!r}") from None
        i, j = 7 - chess.square_rank(square), chess.square_file(square)
        rows[i][j] = ACTIVE_DARK_TILE if rows[i][j] == DARK_TILE else ACTIVE_LIGHT_TILE

    if white_pov:
        lines = [RANK_GLYPHS[i] + "".join(row) for i, row in enumerate(rows)]
        lines.append(ORIGIN + ZERO_WIDTH.join(FILE_GLYPHS))
    else:
        lines = [RANK_GLYPHS[i] + "".join(reversed(row)) for i, row in enumerate(rows)]
        lines.reverse()
        lines.append(ORIGIN + ZERO_WIDTH.join(reversed(FILE_GLYPHS)))
    return "\n".join(lines)
