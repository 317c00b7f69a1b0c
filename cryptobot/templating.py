from __future__ import annotations

import re
from typing import Any, List, Optional, Sequence

from .utils import format_param

PLACEHOLDER_RE = re.compile(r"{(\d+)}")


def substitute(lines: Optional[List[str]], params: Optional[Sequence[Any]]) -> Optional[List[str]]:
    """Purpose: Fill positional {n} placeholders in dialog output lines.
    Inputs/Outputs: Inputs are the output text lines and positional params; output is a
        single-element list with the lines joined by a space and placeholders replaced.
    Side Effects / State: None; the input list is never mutated.
    Dependencies: PLACEHOLDER_RE and format_param; used by every enrichment handler.
    Failure Modes: None; unbound or zero-padded indices keep their literal text, and a missing
        template or params returns the input unchanged.
    If Removed: Enriched values never reach the user.
    Testing Notes: Check bound, unbound and absent params plus an empty template.
    """
    if not lines or params is None:
        return lines

    def _replace(match: re.Match) -> str:
        index = int(match.group(1))
        # "{01}" is not an index.
        if str(index) == match.group(1) and index < len(params):
            return format_param(params[index])
        return match.group(0)

    return [PLACEHOLDER_RE.sub(_replace, " ".join(lines))]
