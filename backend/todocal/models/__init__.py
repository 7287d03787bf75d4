from .calendar import Calendar
from .calendar_membership import CalendarMembership
from .notification import Notification
from .profile import Profile
from .task import Task
from .user import User

__all__ = [
    "Calendar",
    "CalendarMembership",
    "Notification",
    "Profile",
    "Task",
    "User",
]
