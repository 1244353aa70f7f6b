"""Error types raised by the reminder evaluator and the reminder job."""

from __future__ import annotations


class InvalidInputError(ValueError):
    """A date or assignment record that cannot be interpreted."""


class ReminderJobError(Exception):
    """Base class for failures that abort a whole reminder run."""


class UpstreamFetchError(ReminderJobError):
    """The assignment source could not be read."""


class UpstreamWriteError(ReminderJobError):
    """The audit log rejected the batch of reminder decisions."""
