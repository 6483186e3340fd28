"""Dial value history reconstruction."""

from .slots import SlotReconstructor, align_window, forward_fill, slot_count

__all__ = [
    "SlotReconstructor",
    "align_window",
    "slot_count",
    "forward_fill",
]
