class SyncError(Exception):
    """Base class for failures of a single change record."""


class MalformedRecord(SyncError):
    pass


class PersistenceError(SyncError):
    pass


class ReferentialError(SyncError):
    pass
