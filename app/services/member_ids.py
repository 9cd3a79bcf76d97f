"""Member id generation from a tier's ``member_id_format``.

Placeholders: {YYYY} {YY} {MM} {M} {DD} {D} for the issue date, and
{SEQ} or {SEQ:n} for the per-organization sequence zero-padded to n.
Example: "MEM-{YYYY}-{SEQ:3}" -> "MEM-2026-007".
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime

_SEQ = re.compile(r"\{SEQ(?::(\d+))?\}")
_TRAILING_DIGITS = re.compile(r"(\d+)$")


def next_sequence(existing: Iterable[str]) -> int:
    """One past the highest trailing number among ``existing`` ids."""
    highest = 0
    for member_id in existing:
        match = _TRAILING_DIGITS.search(member_id)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1


def format_member_id(fmt: str, now: datetime, seq: int) -> str:
    out = (
        fmt.replace("{YYYY}", f"{now.year:04d}")
        .replace("{YY}", f"{now.year % 100:02d}")
        .replace("{MM}", f"{now.month:02d}")
        .replace("{M}", str(now.month))
        .replace("{DD}", f"{now.day:02d}")
        .replace("{D}", str(now.day))
    )
    return _SEQ.sub(lambda m: str(seq).zfill(int(m.group(1) or 0)), out)
