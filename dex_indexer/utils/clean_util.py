import unicodedata
import re
from dex_indexer.utils.constants import SYMBOL_REPLACEMENTS

MAX_SYMBOL_LENGTH = 32


def clean_symbol(symbol: str) -> str:
    """ASCII-only, alphanumeric symbol (case kept) safe to store and display."""
    for weird_char, replacement in SYMBOL_REPLACEMENTS.items():
        symbol = symbol.replace(weird_char, replacement)

    normalized = unicodedata.normalize("NFKD", symbol)
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r'[^a-zA-Z0-9.\-_]', '', ascii_only)
    return cleaned[:MAX_SYMBOL_LENGTH]
