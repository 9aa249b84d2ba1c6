"""
Puzzle Forge - Text Helpers
Symbol, number and token extraction shared by validation and uniqueness checks.
"""

import re
from typing import List, Dict

# Pictographic and symbolic code points. ASCII digits and '#'/'*' are left
# out on purpose: they are counted as numbers or text, never as symbols.
SYMBOL_PATTERN = re.compile(
    "["
    "\U0001F000-\U0001FAFF"  # mahjong .. symbols & pictographs extended-A
    "←-⇿"          # arrows
    "⌀-⏿"          # misc technical (includes fast-forward keys)
    "①-⓿"          # enclosed alphanumerics
    "■-➿"          # geometric shapes, misc symbols, dingbats
    "⤀-⥿"          # supplemental arrows-B
    "⬀-⯿"          # misc symbols and arrows
    "〰〽㊗㊙"
    "©®‼⁉™ℹ"
    "]"
)

# Joiners and presentation selectors carry no identity of their own
_MODIFIER_PATTERN = re.compile("[\ufe0e\ufe0f\u200d\U0001F3FB-\U0001F3FF]")

ARROW_SYMBOLS = frozenset(
    "⬆⬇➡⬅↗↘↙↖"
    "⏫⏬⏩⏪"
    "\U0001F51D\U0001F519\U0001F51A\U0001F51B\U0001F51C"
)

NUMBER_PATTERN = re.compile(r"\d+")
NON_ALNUM_PATTERN = re.compile(r"[^a-z0-9]")
PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")


def strip_modifiers(text: str) -> str:
    """Remove variation selectors, zero-width joiners and skin tones."""
    return _MODIFIER_PATTERN.sub("", text)


def extract_symbols(text: str) -> List[str]:
    """All pictographic symbols in order of appearance (duplicates kept)."""
    return SYMBOL_PATTERN.findall(strip_modifiers(text))


def extract_components(content: str) -> Dict[str, List[str]]:
    """
    Split puzzle content into its structural parts.

    Args:
        content: Primary puzzle content.

    Returns:
        Dict with 'symbols', 'numbers', 'arrows' and 'text' lists.
    """
    cleaned = strip_modifiers(content)
    symbols = SYMBOL_PATTERN.findall(cleaned)
    numbers = NUMBER_PATTERN.findall(cleaned)
    arrows = [s for s in symbols if s in ARROW_SYMBOLS]

    remainder = SYMBOL_PATTERN.sub(" ", cleaned)
    remainder = NUMBER_PATTERN.sub(" ", remainder)
    text = [token for token in remainder.split() if token]

    return {
        "symbols": symbols,
        "numbers": numbers,
        "arrows": arrows,
        "text": text
    }


def text_tokens(content: str) -> List[str]:
    """Lowercased whitespace tokens with symbols removed."""
    remainder = SYMBOL_PATTERN.sub(" ", strip_modifiers(content))
    return [token.lower() for token in remainder.split() if token]


def normalize_label(label: str) -> str:
    """Lowercase and drop everything that is not a-z or 0-9."""
    return NON_ALNUM_PATTERN.sub("", label.lower())


def has_symbolic_content(content: str) -> bool:
    """True when content holds a pictograph or any punctuation-like symbol."""
    return bool(SYMBOL_PATTERN.search(content) or PUNCTUATION_PATTERN.search(content))


def word_count(text: str) -> int:
    return len(text.split())
