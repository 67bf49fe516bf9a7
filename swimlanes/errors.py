from __future__ import annotations

from typing import Any, Optional


class SwimlanesError(Exception):
    """Base class for domain errors that map onto client-visible responses."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(SwimlanesError):
    status_code = 404
    code = "not_found"


class InvalidInput(SwimlanesError):
    status_code = 400
    code = "invalid_input"


class CardNotActive(SwimlanesError):
    status_code = 409
    code = "card_not_active"


class CardNotArchived(SwimlanesError):
    status_code = 409
    code = "card_not_archived"


class NoColumnsAvailable(SwimlanesError):
    status_code = 409
    code = "board_has_no_columns"


class PositionCollision(SwimlanesError):
    """No integer exists strictly between the two neighbouring positions.

    Storage catches this, rebalances the sibling list and retries, so it only
    reaches a client if the retry itself collides.
    """

    status_code = 409
    code = "position_collision"

    def __init__(self, lower: Optional[int], upper: Optional[int]) -> None:
        super().__init__(
            f"no room for a position between {lower} and {upper}",
            {"lower": lower, "upper": upper},
        )
        self.lower = lower
        self.upper = upper
