"""
Domain records for dials, memberships and historical dial values.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .config.constants import MAX_DIAL_NAME_LENGTH
from .errors import ValidationError


@dataclass
class DialMembership:
    """One member's contribution to a dial's aggregate value."""

    dial_id: int
    user_id: int
    value: int = 0
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Dial:
    """
    A tracked group whose aggregate value is maintained over time.

    ``value`` is computed: the rounded mean of every member's
    contribution. Only the owner may rename or delete a dial.
    """

    user_id: int
    name: str
    value: int = 0
    id: Optional[int] = None
    invite_code: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    memberships: list[DialMembership] = field(default_factory=list)

    def validate(self) -> None:
        """
        Perform basic field validation.

        Raises:
            ValidationError: If the name is blank or too long, or the
                owner is not set
        """
        if not self.name or not self.name.strip():
            raise ValidationError("Dial name required.", field="name")
        if len(self.name) > MAX_DIAL_NAME_LENGTH:
            raise ValidationError(
                f"Dial name too long (max {MAX_DIAL_NAME_LENGTH} characters).",
                field="name",
            )
        if not self.user_id:
            raise ValidationError("Dial owner required.", field="user_id")


@dataclass(frozen=True)
class DialValue:
    """A minute-resolution snapshot of a dial's aggregate value."""

    dial_id: int
    timestamp: datetime
    value: int
