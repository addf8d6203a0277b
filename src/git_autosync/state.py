from enum import Enum


class SyncState(Enum):
    """What the sync controller is doing right now."""

    IDLE = "idle"
    CHECKING_STATUS = "checking_status"
    PULLING = "pulling"
    STAGING = "staging"
    COMMITTING = "committing"
    PUSHING = "pushing"
