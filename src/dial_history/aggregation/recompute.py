"""
Recomputation of a dial's aggregate value from member contributions.

Called whenever a contribution is created or its value changes. The dial's
stored value is the rounded mean of every member's contribution; each
change is written to the value history and announced to every member.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from ..events import DialValueChangedPayload, Event, EventSink, EventType, NopEventSink
from ..storage.base import StorageBackend, StorageError
from ..utils.cancellation import raise_if_cancelled
from .rounding import rounded_mean

logger = logging.getLogger(__name__)


@dataclass
class RecomputeResult:
    """Outcome of one recomputation."""

    dial_id: int
    changed: bool
    old_value: Optional[int] = None
    new_value: Optional[int] = None
    notified_user_ids: list[int] = field(default_factory=list)

    @property
    def dial_found(self) -> bool:
        return self.old_value is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "dial_id": self.dial_id,
            "changed": self.changed,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "notified_user_ids": self.notified_user_ids,
        }


class AggregateRecomputer:
    """
    Keeps ``dials.value`` equal to the rounded mean of its contributions.

    A recomputation that yields the stored value is a silent no-op: no
    write, no history row and no event.
    """

    def __init__(
        self,
        backend: StorageBackend,
        event_sink: Optional[EventSink] = None,
    ):
        """
        Args:
            backend: Storage backend holding dials, memberships and history
            event_sink: Destination for value-changed events (default: discard)
        """
        self._backend = backend
        self._events = event_sink or NopEventSink()

    def recompute(
        self,
        dial_id: int,
        cancel: Optional[threading.Event] = None,
    ) -> RecomputeResult:
        """
        Recompute and store the aggregate value of a dial.

        Runs in a single unit of work (joining the caller's transaction if
        one is open). A dial that no longer exists is skipped.

        Args:
            dial_id: Dial to recompute
            cancel: Optional event; if set before the write phase the
                operation aborts and the transaction rolls back

        Returns:
            RecomputeResult describing what happened

        Raises:
            StorageError: If reading or writing fails.
            OperationCancelledError: If cancelled.
        """
        with self._backend.transaction() as tx:
            old_value = self._backend.get_dial_value(dial_id)
            if old_value is None:
                logger.debug(f"Dial {dial_id} not found, skipping recompute")
                return RecomputeResult(dial_id=dial_id, changed=False)

            total, count = self._backend.membership_value_totals(dial_id)
            new_value = rounded_mean(total, count)

            # Exit if the value will not change.
            if new_value == old_value:
                logger.debug(f"Dial {dial_id} value unchanged at {old_value}")
                return RecomputeResult(
                    dial_id=dial_id,
                    changed=False,
                    old_value=old_value,
                    new_value=new_value,
                )

            raise_if_cancelled(cancel, f"recompute dial {dial_id}")

            self._backend.set_dial_value(dial_id, new_value, tx.now)
            try:
                self._backend.upsert_dial_value(dial_id, tx.now, new_value)
            except StorageError as e:
                raise type(e)(
                    f"insert historical value: dial_id={dial_id}: {e}"
                ) from e

            recipients = self._backend.membership_user_ids(dial_id)
            event = Event(
                type=EventType.DIAL_VALUE_CHANGED,
                payload=DialValueChangedPayload(id=dial_id, value=new_value),
            )
            tx.on_commit(lambda: self._publish(recipients, event))

        logger.info(
            f"Dial {dial_id} value changed {old_value} -> {new_value} "
            f"({count} contributions)"
        )
        return RecomputeResult(
            dial_id=dial_id,
            changed=True,
            old_value=old_value,
            new_value=new_value,
            notified_user_ids=recipients,
        )

    def _publish(self, user_ids: list[int], event: Event) -> None:
        """Deliver an event to every member of the dial."""
        for user_id in user_ids:
            try:
                self._events.publish(user_id, event)
            except Exception as e:
                logger.warning(
                    f"Failed to publish {event.type.value} for dial "
                    f"{event.payload.id} to user={user_id}: {e}"
                )
