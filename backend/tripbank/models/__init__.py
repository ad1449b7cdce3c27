from tripbank.models.user import User
from tripbank.models.trip import Trip, TripPermission
from tripbank.models.moment import Moment
from tripbank.models.media import MediaItem, StoredFile

__all__ = [
    "MediaItem",
    "Moment",
    "StoredFile",
    "Trip",
    "TripPermission",
    "User",
]
