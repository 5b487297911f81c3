"""
Business registration number helpers.

Korean business numbers are 10 digits, displayed as XXX-XX-XXXXX. Input is
otherwise free text; only the digits matter when matching customer records.
"""

import random
import re
from typing import List, Optional

BUSINESS_NUMBER_LENGTH = 10

_NON_DIGITS = re.compile(r"\D+")


def normalize_digits(text: Optional[str]) -> str:
    """Strip everything but ASCII digits."""
    return _NON_DIGITS.sub("", text or "")


def format_business_number(raw: str) -> str:
    """Format (partial) input as XXX-XX-XXXXX, truncated to 10 digits."""
    d = normalize_digits(raw)[:BUSINESS_NUMBER_LENGTH]
    if len(d) <= 3:
        return d
    if len(d) <= 5:
        return f"{d[:3]}-{d[3:]}"
    return f"{d[:3]}-{d[3:5]}-{d[5:]}"


class SecureNumberPad:
    """
    Number pad with a shuffled key layout.

    Keys are reshuffled every time the pad opens so the position of a tap
    does not reveal the digit. Confirmation is only possible with exactly
    ten digits.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self.digits = ""
        self.layout: List[int] = []
        self.open()

    def open(self):
        self.digits = ""
        self.layout = list(range(10))
        self._rng.shuffle(self.layout)

    def press_key(self, position: int) -> bool:
        """Press the key at `position` in the current layout."""
        if position < 0 or position >= len(self.layout):
            return False
        return self.press_digit(self.layout[position])

    def press_digit(self, digit: int) -> bool:
        if len(self.digits) >= BUSINESS_NUMBER_LENGTH:
            return False
        self.digits += str(digit)
        return True

    def backspace(self):
        self.digits = self.digits[:-1]

    @property
    def complete(self) -> bool:
        return len(self.digits) == BUSINESS_NUMBER_LENGTH

    @property
    def display(self) -> str:
        return format_business_number(self.digits)

    def confirm(self) -> Optional[str]:
        """Return the entered digits when complete, else None."""
        return self.digits if self.complete else None
