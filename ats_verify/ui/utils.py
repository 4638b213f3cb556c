"""Input masks applied to ticket form fields before submission."""

from __future__ import annotations

import re

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_NON_DIGIT_RE = re.compile(r"\D")


def format_ticket_code(raw: str) -> str:
    """Normalise free text into the ``XXX-XXX-XXXX`` ticket code shape.

    Non-alphanumerics are dropped, letters uppercased and dashes inserted after the
    third and sixth characters; anything past ten characters is discarded. Partial
    input yields a partial code (``"ab"`` -> ``"AB"``, ``"abc1"`` -> ``"ABC-1"``).
    """

    cleaned = _NON_ALNUM_RE.sub("", raw or "").upper()[:10]
    parts = [cleaned[:3], cleaned[3:6], cleaned[6:10]]
    return "-".join(part for part in parts if part)


def digits_only(raw: str, max_length: int) -> str:
    return _NON_DIGIT_RE.sub("", raw or "")[:max_length]


def format_iin(raw: str) -> str:
    return digits_only(raw, 12)


def format_application_number(raw: str) -> str:
    return digits_only(raw, 13)
