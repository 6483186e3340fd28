"""Authorization rules for dial mutation."""

from typing import Optional

from .models import Dial


def can_edit_dial(user_id: Optional[int], dial: Dial) -> bool:
    """Only the owner of a dial may rename or delete it."""
    return bool(user_id) and dial.user_id == user_id
