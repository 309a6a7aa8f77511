"""Text normalization for crisis-phrase matching.

Crisis detection must hold even when the phrase is disguised, so the
engine matches against both the plain lowercased text and a normalized
form with leetspeak, styled unicode, invisible characters and letter
separators undone.
"""
import re
import unicodedata
from typing import Dict, FrozenSet, Tuple

# Numbers/symbols commonly used in place of letters
LEETSPEAK_MAP: Dict[str, str] = {
    "0": "o",
    "1": "i",
    "3": "e",
    "4": "a",
    "5": "s",
    "7": "t",
    "@": "a",
    "$": "s",
    "!": "i",
    "|": "l",
}

# (first code point, last code point, ASCII base) for styled alphabets
# that NFKD does not fold
STYLED_LETTER_RANGES: Tuple[Tuple[int, int, int], ...] = (
    (0x24B6, 0x24CF, ord("a")),  # Circled capitals
    (0x24D0, 0x24E9, ord("a")),  # Circled small letters
)

INVISIBLE_CHARS: FrozenSet[str] = frozenset({
    "\u200b",  # Zero-width space
    "\u200c",  # Zero-width non-joiner
    "\u200d",  # Zero-width joiner
    "\ufeff",  # Byte order mark
    "\u00ad",  # Soft hyphen
    "\u2060",  # Word joiner
})

_SEPARATORS = re.compile(r"[.\-_\s]+")


class TextNormalizer:
    """Folds obfuscated text into plain lowercase ASCII words.

    ``K1LL`` -> ``kill``, ``ⓚⓘⓛⓛ`` -> ``kill``, ``k.i.l.l`` -> ``kill``.
    """

    def __init__(self):
        # A run of single letters joined by separators
        self._separated_letters = re.compile(r"\b[a-z](?:[.\-_\s]+[a-z]\b)+")

    def normalize(self, text: str) -> str:
        if not text:
            return ""

        folded = []
        for char in text:
            if char in INVISIBLE_CHARS:
                continue
            folded.append(LEETSPEAK_MAP.get(char) or self._fold_unicode(char))

        result = "".join(folded).lower()

        result = self._separated_letters.sub(
            lambda m: _SEPARATORS.sub("", m.group(0)), result
        )

        return " ".join(result.split())

    @staticmethod
    def _fold_unicode(char: str) -> str:
        code_point = ord(char)
        for start, end, base in STYLED_LETTER_RANGES:
            if start <= code_point <= end:
                return chr(base + code_point - start)

        decomposed = unicodedata.normalize("NFKD", char)
        ascii_only = "".join(
            c for c in decomposed
            if unicodedata.category(c) != "Mn" and ord(c) < 128
        )
        return ascii_only or char
