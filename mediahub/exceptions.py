"""
Module: exceptions
Purpose: Custom exception hierarchy for MediaHub.
"""


class MediaHubError(Exception):
    """Base exception for MediaHub."""

    pass


class LibraryError(MediaHubError):
    pass


class SourceError(MediaHubError):
    pass


class SelectionError(MediaHubError):
    """Snapshot could not be read; raised before any mutation."""

    pass


class LibraryNotFoundError(SelectionError):
    pass


class IndexNotFoundError(SelectionError):
    pass


class IndexInvalidError(SelectionError):
    pass


class ConfirmationRequired(MediaHubError):
    """Mutation requested in a non-interactive context without --yes."""

    pass


class ScanError(MediaHubError):
    pass


class MetadataError(MediaHubError):
    pass


class HashingError(MediaHubError):
    pass


class CopyError(MediaHubError):
    pass


class CollisionError(MediaHubError):
    pass


class IndexWriteError(MediaHubError):
    """Durable index write failed; the committed index is unchanged."""

    pass


class IndexLockedError(IndexWriteError):
    pass


class DetectionError(MediaHubError):
    pass


class ImportExecutionError(MediaHubError):
    pass


class TrackingUpdateError(MediaHubError):
    pass
