from courtside.models.user import User
from courtside.models.court import Court, CourtTypeSettings
from courtside.models.booking_rule import BookingRule
from courtside.models.booking import Booking, SlotClaim
from courtside.models.maintenance import MaintenanceWindow, AffectedBooking
from courtside.models.notification import Notification
