import math
import re
from typing import Any, Optional

LEADING_FLOAT_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_float(value: Any) -> Optional[float]:
    """Purpose: Parse the leading numeric prefix of a value as a float.
    Inputs/Outputs: Input is any value (usually a feed string); output is a float or None.
    Side Effects / State: None; pure function.
    Dependencies: Uses LEADING_FLOAT_RE; called by the price enrichment handler.
    Failure Modes: Returns None when no numeric prefix exists (None, "", "n/a").
    If Removed: Feed values like "8000.12" or "5 " cannot be coerced consistently.
    Testing Notes: "8000" -> 8000.0, "-2.5%" -> -2.5, "abc" -> None.
    """
    # Mirror a string round-trip: stringify first, then read the numeric prefix.
    if value is None or isinstance(value, bool):
        return None
    match = LEADING_FLOAT_RE.match(str(value))
    if not match:
        return None
    return float(match.group(0))


def format_number(value: float) -> str:
    """Purpose: Render a float the way the dialog UI expects numbers to look.
    Inputs/Outputs: Input is a float; output is "8000" for 8000.0 and "0.25" for 0.25.
    Side Effects / State: None; pure function.
    Dependencies: None beyond math.
    Failure Modes: None; NaN and infinities render as "NaN"/"Infinity"/"-Infinity".
    If Removed: Prices are shown with a trailing ".0".
    Testing Notes: Check integral floats, fractions, and negative values.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def format_param(value: Any) -> str:
    """Render a substitution value as template text."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_number(value)
    return str(value)
