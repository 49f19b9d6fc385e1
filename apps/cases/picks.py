from __future__ import annotations

import re
from typing import Optional, Sequence

from apps.cases.state import PickOption
from apps.cases.text import normalize_text

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")
_NON_DIGIT_RE = re.compile(r"\D+")


def resolve_pick(reply: str, options: Sequence[PickOption]) -> Optional[PickOption]:
    """Match a reply against pending options by 1-based index, id, or label containment.

    ``None`` means the caller should re-ask with the same pending pick.
    """

    raw = str(reply or "").strip()
    if not raw or not options:
        return None

    lead = _LEADING_INT_RE.match(raw)
    if lead:
        idx = int(lead.group(1))
        if 1 <= idx <= len(options):
            return options[idx - 1]

    digits = _NON_DIGIT_RE.sub("", raw)
    if digits:
        as_id = str(int(digits))
        for opt in options:
            if str(opt.id) == as_id:
                return opt

    needle = normalize_text(raw)
    if not needle:
        return None
    for opt in options:
        label = normalize_text(opt.label)
        if label and (needle in label or label in needle):
            return opt
    return None


__all__ = ["resolve_pick"]
