"""
Integration tests for the DialService facade.

Tests:
- Dial creation (invite code, owner membership, initial history)
- Lookup, listing and owner-only update/delete
- Contribution updates triggering recompute
- Value history and reports through the service
"""

from datetime import timedelta

import pytest

from dial_history.errors import NotFoundError, UnauthorizedError, ValidationError
from dial_history.models import DialMembership


class TestCreateDial:
    """Tests for create_dial."""

    def test_create_dial(self, dial_service):
        dial = dial_service.create_dial(1, "Team mood")

        assert dial.id is not None
        assert dial.name == "Team mood"
        assert len(dial.invite_code) == 32
        assert [m.user_id for m in dial.memberships] == [1]

    def test_invite_codes_are_unique(self, dial_service):
        first = dial_service.create_dial(1, "One")
        second = dial_service.create_dial(1, "Two")
        assert first.invite_code != second.invite_code

    def test_initial_value_recorded(self, dial_service):
        dial = dial_service.create_dial(1, "Zero")
        assert dial_service.history_of(dial.id) == [0]

    def test_initial_value_replaced_by_recompute(self, dial_service, sqlite_backend):
        """The owner's zero contribution drives the aggregate in the same minute."""
        dial = dial_service.create_dial(1, "Seeded", value=7)

        assert dial.value == 0
        assert sqlite_backend.get_dial_value(dial.id) == 0
        assert dial_service.history_of(dial.id) == [0]

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_invalid_name(self, dial_service, sqlite_backend, name):
        with pytest.raises(ValidationError):
            dial_service.create_dial(1, name)
        assert sqlite_backend.get_table_row_count("dials") == 0

    def test_name_is_trimmed(self, dial_service):
        dial = dial_service.create_dial(1, "  Padded  ")
        assert dial.name == "Padded"


class TestFindDials:
    """Tests for lookup and listing."""

    def test_find_dial_by_id(self, dial_service):
        created = dial_service.create_dial(1, "Mood")
        found = dial_service.find_dial_by_id(created.id)

        assert found.name == "Mood"
        assert [m.user_id for m in found.memberships] == [1]

    def test_find_missing_dial(self, dial_service):
        with pytest.raises(NotFoundError):
            dial_service.find_dial_by_id(404)

    def test_find_dials_only_returns_memberships(self, dial_service):
        dial_service.create_dial(1, "Mine")
        dial_service.create_dial(2, "Theirs")

        dials, total = dial_service.find_dials(1)
        assert [d.name for d in dials] == ["Mine"]
        assert total == 1

    def test_find_by_invite_code_ignores_membership(self, dial_service):
        theirs = dial_service.create_dial(2, "Theirs")

        dials, total = dial_service.find_dials(1, invite_code=theirs.invite_code)
        assert total == 1
        assert dials[0].id == theirs.id

    def test_find_dials_paginates(self, dial_service):
        for i in range(4):
            dial_service.create_dial(1, f"Dial {i}")

        dials, total = dial_service.find_dials(1, limit=2, offset=2)
        assert [d.name for d in dials] == ["Dial 2", "Dial 3"]
        assert total == 4


class TestUpdateDeleteDial:
    """Owner-only mutations."""

    def test_owner_can_rename(self, dial_service, clock):
        dial = dial_service.create_dial(1, "Old")
        clock.advance(minutes=5)

        updated = dial_service.update_dial(1, dial.id, "New")

        assert updated.name == "New"
        assert dial_service.find_dial_by_id(dial.id).name == "New"
        assert updated.updated_at == clock()

    def test_non_owner_cannot_rename(self, dial_service):
        dial = dial_service.create_dial(1, "Old")

        with pytest.raises(UnauthorizedError):
            dial_service.update_dial(2, dial.id, "Hijacked")
        assert dial_service.find_dial_by_id(dial.id).name == "Old"

    def test_rename_validates(self, dial_service):
        dial = dial_service.create_dial(1, "Old")
        with pytest.raises(ValidationError):
            dial_service.update_dial(1, dial.id, "")

    def test_rename_missing_dial(self, dial_service):
        with pytest.raises(NotFoundError):
            dial_service.update_dial(1, 404, "Name")

    def test_owner_can_delete(self, dial_service, sqlite_backend):
        dial = dial_service.create_dial(1, "Doomed")
        dial_service.delete_dial(1, dial.id)

        with pytest.raises(NotFoundError):
            dial_service.find_dial_by_id(dial.id)
        assert sqlite_backend.get_table_row_count("dial_values") == 0

    def test_non_owner_cannot_delete(self, dial_service):
        dial = dial_service.create_dial(1, "Keep")
        with pytest.raises(UnauthorizedError):
            dial_service.delete_dial(2, dial.id)

    def test_delete_missing_dial(self, dial_service):
        with pytest.raises(NotFoundError):
            dial_service.delete_dial(1, 404)


class TestMembershipValues:
    """Contribution updates drive the aggregate."""

    def test_set_value_recomputes(self, dial_service, sqlite_backend, clock):
        dial = dial_service.create_dial(1, "Mood")
        clock.advance(minutes=1)

        result = dial_service.set_membership_value(dial.id, 1, 8)

        assert result.changed is True
        assert sqlite_backend.get_dial_value(dial.id) == 8
        assert dial_service.history_of(dial.id) == [0, 8]

    def test_set_value_notifies_members(self, dial_service, sqlite_backend, event_sink):
        dial = dial_service.create_dial(1, "Mood")
        with sqlite_backend.transaction() as tx:
            sqlite_backend.create_membership(
                DialMembership(
                    dial_id=dial.id,
                    user_id=2,
                    value=0,
                    created_at=tx.now,
                    updated_at=tx.now,
                )
            )
        event_sink.clear()

        dial_service.set_membership_value(dial.id, 2, 4)

        assert sorted(uid for uid, _ in event_sink.events) == [1, 2]
        assert event_sink.events_for(2)[0].payload.value == 2

    def test_set_value_for_non_member(self, dial_service):
        dial = dial_service.create_dial(1, "Mood")
        with pytest.raises(NotFoundError):
            dial_service.set_membership_value(dial.id, 2, 4)

    def test_changes_in_same_minute_collapse(self, dial_service, clock):
        dial = dial_service.create_dial(1, "Mood")
        clock.advance(minutes=1)
        dial_service.set_membership_value(dial.id, 1, 3)
        clock.advance(seconds=30)
        dial_service.set_membership_value(dial.id, 1, 5)

        assert dial_service.history_of(dial.id) == [0, 5]

    def test_recompute_aggregate_of_missing_dial(self, dial_service):
        result = dial_service.recompute_aggregate(404)
        assert result.changed is False


class TestServiceReports:
    """Reports built through the service."""

    def test_report_follows_history(self, dial_service, clock):
        start = clock()
        dial = dial_service.create_dial(1, "Mood")
        clock.advance(minutes=10)
        dial_service.set_membership_value(dial.id, 1, 6)

        report = dial_service.build_report(
            1, start, start + timedelta(minutes=20), timedelta(minutes=5)
        )

        assert report.values == [0, 0, 6, 6]

    def test_record_initial_value(self, dial_service, clock):
        dial = dial_service.create_dial(1, "Mood")
        dial_service.record_initial_value(dial.id, 3, clock() + timedelta(hours=1))

        assert dial_service.history_of(dial.id) == [0, 3]
