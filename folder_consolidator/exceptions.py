"""Exception hierarchy for folder consolidator."""


class ConsolidatorError(Exception):
    """Base exception for folder consolidator."""

    pass


class ConsolidationError(ConsolidatorError):
    """The requested run is invalid (no sources, overlapping paths, already running)."""

    pass


class AccessDeniedError(ConsolidatorError):
    pass


class MergeError(ConsolidatorError):
    pass


class ArchiveError(ConsolidatorError):
    pass
