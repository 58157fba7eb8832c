class TrackerError(Exception):
    """Base class for errors surfaced to callers of the tracker."""


class NotAuthenticatedError(TrackerError):
    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class ItemNotFoundError(TrackerError):
    """The item is missing locally or was rejected by the store as missing.

    The local collection is stale when this is raised; callers should
    re-synchronize from the store before retrying.
    """

    resync_required = True

    def __init__(self, item_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Media item {item_id} not found")
        self.item_id = item_id


class RemoteStoreError(TrackerError):
    retryable = True


class SeasonNavigationError(TrackerError):
    pass
