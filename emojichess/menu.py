"""Static quick reply menus that are not about picking a move."""

from emojichess.engine_policy import BOT_PROFILES
from emojichess.models import BotProfile, MenuResult, QuickReply

MENU_PREFIX = "Menu"

MENU_ROOT = {
    "🆕 New Game": "new_game",
    "🔄 Flip Board": "flip_board",
    "💾 Download Game": "download_game",
    "❓ Help": "help_menu",
}

MENU_HELP = {
    "🎮 Playing a Move": "playing_move",
    "💬 Other Commands": "other_commands",
    "👩‍🏫 Chess Rules": "chess_rules",
    "ℹ️ About EmojiChess": "about",
}

HELP_TEXT = {
    "playing_move": (
        "Tap a piece in the quick replies, then keep tapping until you reach your move. "
        "🔙 goes back a step. You can also type a move in algebraic notation, e.g. Nf3 or O-O."
    ),
    "other_commands": "Type \"menu\" at any time to start a new game, flip the board or download your game.",
    "chess_rules": "The full rules of chess: https://www.fide.com/FIDE/handbook/LawsOfChess.pdf",
    "about": "EmojiChess lets you play chess against Stockfish right here in Messenger.",
}


def menu_payload(option: str) -> str:
    return f"{MENU_PREFIX}|{option}"


def _options(entries: dict[str, str]) -> list[QuickReply]:
    return [QuickReply(title, menu_payload(option)) for title, option in entries.items()]


def root_menu() -> MenuResult:
    return MenuResult("What would you like to do?", _options(MENU_ROOT))


def help_menu() -> MenuResult:
    return MenuResult("What do you need help with?", _options(MENU_HELP))


def level_menu(profiles: tuple[BotProfile, ...] = BOT_PROFILES) -> MenuResult:
    return MenuResult(
        "Pick your opponent, from easiest to hardest:",
        [QuickReply(p.emoji, p.payload) for p in profiles],
    )


BOT_MOVE_OPTION = "bot_move"
BOT_BUSY_TEXT = "The bot is busy thinking about another game. Tap below to ask again in a moment."


def bot_busy_menu() -> MenuResult:
    return MenuResult(BOT_BUSY_TEXT, [QuickReply("🤖 Your move, bot", menu_payload(BOT_MOVE_OPTION))])
