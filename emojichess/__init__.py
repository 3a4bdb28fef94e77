"""EmojiChess: play chess against Stockfish inside Facebook Messenger."""
