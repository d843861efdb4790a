"""
Numeric parser for financial table cells and narrative amounts.
"""

import logging
import math
import re
import unicodedata
from typing import Optional, Tuple, Union

from .constants import MAGNITUDE_WORDS, SCALE_FACTORS

logger = logging.getLogger(__name__)

Number = Union[int, float]

CURRENCY_PATTERN = re.compile(r"(?:US|NT|HK|A|C|S)?\$|[€£¥₩]|\b(?:USD|NTD|TWD|EUR)\b", re.IGNORECASE)
DASH_GLYPHS = frozenset("-—–‒―")
FOOTNOTE_SUFFIX = re.compile(r"^([\d,.]+)\(\d\)$")
MAGNITUDE_PATTERN = re.compile(
    r"^(-?\d[\d,]*(?:\.\d+)?|-?\.\d+)\s*(billions?|millions?|bn|mn|b|m)\b\.?$",
    re.IGNORECASE,
)
NUMBER_PATTERN = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)$")
# Cell text that could be a table value: currency, digits, separators,
# parentheses, dashes and a trailing percent sign only.
NUMERIC_CELL_PATTERN = re.compile(r"^[\s$€£¥\d,.\-()—–‒−%]+$")


def _normalize_text(text: str) -> str:
    text = unicodedata.normalize("NFKC", text)
    return text.replace("−", "-").strip()


def looks_numeric(text: Optional[str]) -> bool:
    """Return True when cell text is made only of numeric table glyphs.

    A lone currency sign or an empty string is not numeric.
    """
    if not text:
        return False
    normalized = CURRENCY_PATTERN.sub("", _normalize_text(text)).strip()
    if not normalized:
        return False
    return bool(NUMERIC_CELL_PATTERN.match(normalized))


class ValueParser:
    """Parser for numbers as they are printed in financial statements."""

    def __init__(self, base_scale: str = "millions"):
        """
        Initialize the parser.

        Args:
            base_scale: Unit that magnitude words ("$51.2 billion") resolve to
        """
        if base_scale not in SCALE_FACTORS:
            raise ValueError(f"Unknown scale: {base_scale}")
        self.base_scale = base_scale

    def parse_numeric(self, text: Optional[str]) -> Optional[Number]:
        """
        Parse printed cell text into a number.

        Args:
            text: Raw cell text, e.g. "$57,006", "(1,234)", "—"

        Returns:
            int or float, or None for dashes, blanks and anything that is not
            a number once symbols are removed
        """
        return self._parse(text)[0]

    def parse_scaled(
        self, text: Optional[str], source_scale: str
    ) -> Optional[Number]:
        """
        Parse cell text printed in ``source_scale`` into the base scale.

        Amounts that state their own magnitude ("$1.2 billion") are
        already in the base scale and are not converted again.
        """
        value, stated = self._parse(text)
        if value is None or stated:
            return value
        return self.normalize_scale(value, source_scale, self.base_scale)

    def _parse(self, text: Optional[str]) -> Tuple[Optional[Number], bool]:
        if text is None:
            return None, False

        cleaned = CURRENCY_PATTERN.sub("", _normalize_text(str(text)))
        cleaned = re.sub(r"\s+", "", cleaned)
        if not cleaned or all(ch in DASH_GLYPHS for ch in cleaned):
            return None, False

        footnote = FOOTNOTE_SUFFIX.match(cleaned)
        if footnote:
            cleaned = footnote.group(1)

        negative = False
        if cleaned.startswith("(") or cleaned.endswith(")"):
            negative = True
            cleaned = cleaned.strip("()")
            if not cleaned:
                return None, False

        magnitude = self.parse_magnitude(cleaned)
        stated = magnitude is not None
        if stated:
            value = magnitude
        else:
            value = self._parse_plain(cleaned.replace(",", ""))
            if value is None:
                return None, False

        return (-value if negative else value), stated

    def parse_magnitude(self, text: Optional[str]) -> Optional[Number]:
        """
        Parse an amount with a magnitude word into the base scale.

        "$51.2 billion" -> 51200 and "$760 million" -> 760 with a base scale
        of millions. Returns None when the text carries no magnitude word.
        """
        if not text:
            return None
        cleaned = CURRENCY_PATTERN.sub("", _normalize_text(str(text))).strip()
        match = MAGNITUDE_PATTERN.match(cleaned)
        if not match:
            return None
        amount = self._parse_plain(match.group(1).replace(",", ""))
        if amount is None:
            return None
        scale = MAGNITUDE_WORDS[match.group(2).lower()]
        factor = SCALE_FACTORS[scale] / SCALE_FACTORS[self.base_scale]
        if factor < 1:
            return self.normalize_scale(amount, scale, self.base_scale)
        # Whole base units, halves rounded up: "$760.5 million" -> 761.
        return int(math.floor(amount * factor + 0.5))

    def normalize_scale(
        self,
        value: Optional[Number],
        source_scale: str,
        target_scale: str,
        decimals: Optional[int] = None,
    ) -> Optional[Number]:
        """
        Convert a value between reporting scales.

        Args:
            value: Number in ``source_scale``
            source_scale: One of units/thousands/millions/billions
            target_scale: Scale to convert to
            decimals: Digits to keep; defaults to whole target units when
                scaling up and three decimals when scaling down

        Returns:
            Converted value, an int when it is whole
        """
        if value is None:
            return None
        for scale in (source_scale, target_scale):
            if scale not in SCALE_FACTORS:
                raise ValueError(f"Unknown scale: {scale}")
        if source_scale == target_scale:
            return value

        factor = SCALE_FACTORS[source_scale] / SCALE_FACTORS[target_scale]
        if decimals is None:
            decimals = 0 if factor >= 1 else 3
        converted = round(value * factor, decimals)
        if float(converted).is_integer():
            return int(converted)
        return converted

    @staticmethod
    def _parse_plain(text: str) -> Optional[Number]:
        if not NUMBER_PATTERN.match(text):
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            logger.debug(f"Unparseable numeric text: {text!r}")
            return None


_DEFAULT_PARSER = ValueParser()


def parse_numeric(text: Optional[str]) -> Optional[Number]:
    """Parse cell text with the default (millions) parser."""
    return _DEFAULT_PARSER.parse_numeric(text)


def is_null_marker(text: Optional[str]) -> bool:
    """True for blank cells and dash glyphs, which print "no value"."""
    if text is None:
        return True
    cleaned = re.sub(r"\s+", "", CURRENCY_PATTERN.sub("", _normalize_text(str(text))))
    return not cleaned or all(ch in DASH_GLYPHS for ch in cleaned)
