from tripbook.models.trip import Trip
from tripbook.models.booking import Booking

__all__ = ["Trip", "Booking"]
