from __future__ import annotations

from dataclasses import dataclass
from typing import Union
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated caller, reconstructed from the session token per request."""

    id: UUID
    email: str = ""


@dataclass(frozen=True, slots=True)
class Guest:
    """Anonymous caller.  Has no stable id and only reaches public operations."""


Actor = Union[Identity, Guest]

ANONYMOUS = Guest()
