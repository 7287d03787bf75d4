from .calendar import (
    BootstrapRead,
    CalendarCreate,
    CalendarRead,
    CalendarReadWithRole,
    InviteCreate,
    MembershipRead,
    PendingRequestRead,
)
from .notification import NotificationRead, NotificationUpdate
from .task import (
    FixedDateReminderSpec,
    MonthlyReminderSpec,
    NoReminderSpec,
    ReminderSpec,
    ReorderRequest,
    ReorderResult,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TimeOfDayReminderSpec,
    ToggleResult,
)
from .user import (
    ProfileRead,
    ProfileUpdate,
    RefreshTokenRequest,
    TokenPair,
    UserCreate,
    UserLogin,
    UserRead,
)
from .view import (
    ColorMapRead,
    ReportCreatorGroup,
    ReportDay,
    ReportTaskLine,
    WeeklyReportRead,
)

__all__ = [
    "BootstrapRead",
    "CalendarCreate",
    "CalendarRead",
    "CalendarReadWithRole",
    "ColorMapRead",
    "FixedDateReminderSpec",
    "InviteCreate",
    "MembershipRead",
    "MonthlyReminderSpec",
    "NoReminderSpec",
    "NotificationRead",
    "NotificationUpdate",
    "PendingRequestRead",
    "ProfileRead",
    "ProfileUpdate",
    "RefreshTokenRequest",
    "ReminderSpec",
    "ReorderRequest",
    "ReorderResult",
    "ReportCreatorGroup",
    "ReportDay",
    "ReportTaskLine",
    "TaskCreate",
    "TaskRead",
    "TaskUpdate",
    "TimeOfDayReminderSpec",
    "ToggleResult",
    "TokenPair",
    "UserCreate",
    "UserLogin",
    "UserRead",
    "WeeklyReportRead",
]
