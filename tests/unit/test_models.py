"""
Unit tests for dial model validation.
"""

import pytest

from dial_history.errors import ValidationError
from dial_history.models import Dial


class TestDialValidation:
    def test_valid_dial(self):
        Dial(user_id=1, name="Mood").validate()

    @pytest.mark.parametrize("name", ["", "  ", "n" * 101])
    def test_invalid_name(self, name):
        with pytest.raises(ValidationError) as exc_info:
            Dial(user_id=1, name=name).validate()
        assert exc_info.value.field == "name"

    def test_name_at_limit(self):
        Dial(user_id=1, name="n" * 100).validate()

    def test_missing_owner(self):
        with pytest.raises(ValidationError):
            Dial(user_id=0, name="Mood").validate()
