"""
Text normalization for detected overlay text.

Two forms are produced for every detection:

* the display form keeps casing and diacritics but drops emoji and
  pictographic symbols and collapses whitespace;
* the comparison key additionally drops punctuation and symbols and is
  case-folded, so "SALE!" and "sale" compare equal.
"""

import re
import unicodedata
from typing import Optional

# Emoji and pictographic ranges removed from the display form
_EMOJI_RANGES = re.compile(
    "["
    "\U0001F000-\U0001F02F"  # mahjong tiles
    "\U0001F0A0-\U0001F0FF"  # playing cards
    "\U0001F100-\U0001F1FF"  # enclosed alphanumerics, regional indicators
    "\U0001F300-\U0001FAFF"  # pictographs, emoticons, transport, extended
    "\u2600-\u26FF"          # misc symbols
    "\u2700-\u27BF"          # dingbats
    "\u2B00-\u2BFF"          # arrows and stars
    "\uFE00-\uFE0F"          # variation selectors
    "\u200D"                  # zero width joiner
    "\u20E3"                  # combining keycap
    "]+"
)
_WHITESPACE = re.compile(r"\s+")

# Unicode categories kept in the comparison key: letters, marks, numbers
_KEY_CATEGORIES = ("L", "M", "N")


def clean_display_text(text: Optional[str]) -> str:
    """Strip emoji/symbol code points and collapse whitespace"""
    if not text:
        return ""
    text = unicodedata.normalize("NFC", str(text))
    text = _EMOJI_RANGES.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def comparison_key(text: Optional[str]) -> str:
    """Reduce text to letters, digits and single spaces, case-folded"""
    text = clean_display_text(text)
    kept = []
    for ch in text:
        if ch.isspace():
            kept.append(" ")
        elif unicodedata.category(ch)[0] in _KEY_CATEGORIES:
            kept.append(ch)
    key = _WHITESPACE.sub(" ", "".join(kept)).strip()
    return unicodedata.normalize("NFC", key.casefold())
