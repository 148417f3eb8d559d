"""Route-unit lifecycle.

A unit moves through the reload controller in one of two shapes::

    staged -> validated -> applied
    staged -> invalid   -> rolled_back

A validated unit whose reload fails is also rolled back. Applied units leave
the live set only through an explicit retraction.
"""

from __future__ import annotations

from enum import StrEnum


class UnitState(StrEnum):
    """State of a route unit inside the reload controller."""

    STAGED = "staged"
    VALIDATED = "validated"
    INVALID = "invalid"
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"
    RETRACTED = "retracted"


UNIT_TRANSITIONS: dict[str, list[str]] = {
    "staged": ["validated", "invalid"],
    "validated": ["applied", "rolled_back"],
    "invalid": ["rolled_back"],
    "applied": ["retracted"],
    "rolled_back": [],
    "retracted": [],
}


def is_valid_transition(
    current: str,
    target: str,
    transitions: dict[str, list[str]] = UNIT_TRANSITIONS,
) -> bool:
    """Check if transitioning from *current* to *target* is allowed."""
    allowed = transitions.get(current, [])
    return target in allowed
