from __future__ import annotations

import math
import re
from decimal import Decimal

_STRIP_PATTERN = re.compile(r"[₹$€£¥,\s]")


def parse_number(raw_value: object) -> float:
    """
    Coerce a spreadsheet cell into a non-negative float.

    Currency symbols, thousands separators and whitespace are removed before
    parsing. Missing, unparseable or negative input yields 0.0 so callers can
    treat every cell uniformly; telling "missing" apart from "zero" is left to
    validation.
    """

    if raw_value is None or isinstance(raw_value, bool):
        return 0.0

    if isinstance(raw_value, (int, float, Decimal)):
        value = float(raw_value)
    else:
        cleaned = _STRIP_PATTERN.sub("", str(raw_value))
        if not cleaned:
            return 0.0
        try:
            value = float(cleaned)
        except ValueError:
            return 0.0

    if math.isnan(value) or math.isinf(value) or value < 0:
        return 0.0
    return value
