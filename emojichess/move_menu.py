"""
Quick reply move menus.

Messenger shows at most a dozen quick replies under a message, while a
middlegame position easily has 30-40 legal moves. `encode` groups the moves
into a small tree (piece kind, then piece instance, then destination file)
in which no layer is wider than the quick reply budget, and `decode` walks
one step down that tree when the user taps an option.

The tree is never stored server side. It is serialised as a JSON literal
and carried inside every `Tree|...` payload together with the path of the
option, so a tap can be replayed or lost without any cleanup:

    [{"🦄 (Knight)": ["Na3", "Nc3", "Nf3", "Nh3"]},
     {"🏰 (Rook)": [{"🏰 on a1": ["Ra2", "Ra3", {"b-file": ["Rb1", "Rb2"]}]},
                   "Rh2"]}]

Leaves are SAN strings with the check markers removed; internal nodes are
single-key objects mapping the option title to its children.
"""

import json
import logging

from emojichess.emoji_board import BACK, glyph
from emojichess.errors import CorruptPositionError, EmptyMoveListError, MalformedPayloadError
from emojichess.models import MenuResult, Move, PieceKind, QuickReply
from emojichess.move_filters import by_destination_file, by_origin, by_piece

log = logging.getLogger(__name__)

DEFAULT_CHOICE_LIMIT = 12
# Messenger rejects quick reply payloads longer than this
MAX_PAYLOAD_LENGTH = 1000
AVAILABLE_MOVES_PAYLOAD = "get_available_moves"
MOVE_PREFIX = "Move"
TREE_PREFIX = "Tree"

PICK_MOVE = "Your turn! Pick a move:"
PICK_PIECE = "Your turn! Pick a piece:"


def sanitise_san(san: str) -> str:
    """Drop check (+) and mate (#) markers so the menu gives no hints."""
    return san.replace("+", "").replace("#", "")


def format_move(move: Move, san: str | None = None) -> str:
    """SAN with the piece letter swapped for its glyph (Nf3 -> 🦄f3).

    Pawn moves and castling keep their plain notation.
    """
    san = move.san if san is None else san
    kind = move.piece if isinstance(move.piece, PieceKind) else PieceKind.from_letter(str(move.piece))
    if kind is PieceKind.PAWN or san.startswith("O"):
        return san
    return glyph(move.color, kind) + san[1:]


def move_payload(san: str) -> str:
    return f"{MOVE_PREFIX}|{san}"


def tree_payload(literal: str, path: list[int]) -> str:
    return f"{TREE_PREFIX}|{literal}|{','.join(str(p) for p in path)}"


def parse_tree_payload(payload: str) -> tuple[str, list[int]]:
    """Split a `Tree|<literal>|<path>` payload into the literal and the path."""
    try:
        prefix, rest = payload.split("|", 1)
        literal, path_text = rest.rsplit("|", 1)
        path = [int(p) for p in path_text.split(",")]
    except ValueError:
        raise MalformedPayloadError(f"Cannot parse tree payload {payload[:80]!r}") from None
    if prefix != TREE_PREFIX:
        raise MalformedPayloadError(f"Not a tree payload: {payload[:80]!r}")
    return literal, path


def _check_layer(nodes: list, limit: int) -> list:
    if len(nodes) > limit:
        raise CorruptPositionError(f"Menu layer has {len(nodes)} options, limit is {limit}")
    return nodes


def _split_by_file(moves: list[Move], limit: int) -> list:
    nodes = []
    for file, group in by_destination_file(moves).items():
        if len(group) == 1:
            nodes.append(sanitise_san(group[0].san))
        else:
            sans = [sanitise_san(m.san) for m in group]
            nodes.append({f"{file}-file": _check_layer(sans, limit)})
    return _check_layer(nodes, limit)


def piece_subtree(moves: list[Move], limit: int) -> list:
    """Children of one piece-kind option, no layer wider than `limit`."""
    if len(moves) <= limit:
        return [sanitise_san(m.san) for m in moves]

    origins = by_origin(moves)
    if len(origins) > limit:
        # Ten knights is the legal maximum, so this is a broken position.
        raise CorruptPositionError(f"Unexpectedly large number of piece instances: {len(origins)}")
    if len(origins) == 1:
        return _split_by_file(moves, limit)

    nodes = []
    for origin, group in origins.items():
        if len(group) == 1:
            nodes.append(sanitise_san(group[0].san))
            continue
        title = f"{glyph(group[0].color, group[0].piece)} on {origin}"
        if len(group) <= limit:
            nodes.append({title: [sanitise_san(m.san) for m in group]})
        else:
            nodes.append({title: _split_by_file(group, limit)})
    return nodes


def encode(moves: list[Move], choice_limit: int = DEFAULT_CHOICE_LIMIT) -> MenuResult:
    """Build the first quick reply menu for a list of legal moves."""
    if not moves:
        raise EmptyMoveListError("No available moves supplied")

    if len(moves) <= choice_limit:
        return MenuResult(
            PICK_MOVE,
            [QuickReply(format_move(m), move_payload(m.san)) for m in moves],
        )

    # Nested layers keep one slot free for the back option.
    layer_limit = choice_limit - 1
    color = moves[0].color
    tree: list = []
    titles: list[str | None] = []
    for kind, group in by_piece(moves).items():
        if len(group) == 1:
            tree.append(sanitise_san(group[0].san))
            titles.append(None)
        else:
            title = f"{glyph(color, kind)} ({kind.title})"
            tree.append({title: piece_subtree(group, layer_limit)})
            titles.append(title)

    literal = json.dumps(tree, ensure_ascii=False, separators=(",", ":"))
    # Paths are at most three deep: piece kind, piece instance, destination file
    longest = len(tree_payload(literal, [layer_limit] * 3))
    if longest > MAX_PAYLOAD_LENGTH:
        log.warning(
            "Move tree payloads reach %d characters, over the %d Messenger accepts",
            longest, MAX_PAYLOAD_LENGTH,
        )
    options = []
    for index, (node, title) in enumerate(zip(tree, titles)):
        if title is None:
            move = next(m for m in moves if sanitise_san(m.san) == node)
            options.append(QuickReply(format_move(move, node), move_payload(node)))
        else:
            options.append(QuickReply(title, tree_payload(literal, [index])))
    return MenuResult(PICK_PIECE, options)


def decode(literal: str, path: list[int], choice_limit: int = DEFAULT_CHOICE_LIMIT) -> MenuResult:
    """Build the menu for the node at `path` inside a tree literal from `encode`.

    Every menu ends with a back option: one level up, or at the top of the
    tree the `get_available_moves` payload, which rebuilds the first menu
    from the live position.
    """
    try:
        children = json.loads(literal)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(f"Tree literal is not JSON: {e}") from None
    if not path:
        raise MalformedPayloadError("Empty tree path")

    label = ""
    for index in path:
        if not isinstance(children, list) or not 0 <= index < len(children):
            raise MalformedPayloadError(f"Path {path} does not fit the tree")
        node = children[index]
        if not isinstance(node, dict) or len(node) != 1:
            raise MalformedPayloadError(f"Path {path} ends on a move, not a menu")
        (label, children), = node.items()

    if not isinstance(children, list) or not children or len(children) >= choice_limit:
        raise MalformedPayloadError(f"Node at {path} is not a valid menu layer")

    options = []
    all_moves = True
    for i, child in enumerate(children):
        if isinstance(child, str):
            options.append(QuickReply(child, move_payload(child)))
        elif isinstance(child, dict) and len(child) == 1:
            all_moves = False
            options.append(QuickReply(next(iter(child)), tree_payload(literal, [*path, i])))
        else:
            raise MalformedPayloadError(f"Unexpected node {child!r} in tree")

    back = tree_payload(literal, path[:-1]) if len(path) > 1 else AVAILABLE_MOVES_PAYLOAD
    options.append(QuickReply(BACK, back))
    return MenuResult(f"{label}: {'pick a move' if all_moves else 'pick one'}", options)
