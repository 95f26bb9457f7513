"""Error hierarchy for the live engine.

Only commit and view failures are ever raised to callers. A malformed window
is logged and treated as zero-width by the classifier, and an invalid
overlay value is excluded from the commit diff instead of raising.
"""


class CampusLiveError(Exception):
    """Base exception for all engine errors."""

    pass


class MalformedWindowError(CampusLiveError):
    """A window whose end is not after its start.

    Built for log records by the classifier; never raised from ``classify``.
    """

    def __init__(self, window_id, start, end):
        super().__init__(f"window {window_id!r} ends at {end} which is not after its start {start}")
        self.window_id = window_id
        self.start = start
        self.end = end


class ValidationError(CampusLiveError):
    """An overlay value is out of range or not one of the declared choices."""

    def __init__(self, entity_id, reason: str):
        super().__init__(f"{entity_id!r}: {reason}")
        self.entity_id = entity_id
        self.reason = reason


class CommitError(CampusLiveError):
    """Base class for batch commit failures."""

    pass


class CommitTransportError(CommitError):
    """The bulk update request failed; local edits are kept for a manual retry."""

    pass


class CommitInProgressError(CommitError):
    """A commit for the same overlay is already in flight."""

    pass


class StaleViewError(CampusLiveError):
    """A response arrived after its view was torn down or superseded."""

    pass
