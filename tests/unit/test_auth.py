"""
Unit tests for the dial edit permission rule.
"""

from dial_history.auth import can_edit_dial
from dial_history.models import Dial


class TestCanEditDial:
    def test_owner(self):
        assert can_edit_dial(1, Dial(user_id=1, name="Mood")) is True

    def test_other_user(self):
        assert can_edit_dial(2, Dial(user_id=1, name="Mood")) is False

    def test_anonymous(self):
        assert can_edit_dial(None, Dial(user_id=1, name="Mood")) is False
