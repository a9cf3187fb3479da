"""Slot generation and the scheduling-request state machine."""
