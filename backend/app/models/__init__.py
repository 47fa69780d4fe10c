from app.models.user import User
from app.models.profile import UserProfile
from app.models.preferences import NotificationPreferences
from app.models.subscription import Subscription
from app.models.content import Affirmation, AffirmationCategory, ContentUsage
from app.models.mood_session import MoodSession
from app.models.notification_schedule import ScheduleEntry
from app.models.sent_log import SentLog
from app.models.device_token import DeviceToken
from app.models.analytics_event import AnalyticsEvent

__all__ = [
    "User",
    "UserProfile",
    "NotificationPreferences",
    "Subscription",
    "AffirmationCategory",
    "Affirmation",
    "ContentUsage",
    "MoodSession",
    "ScheduleEntry",
    "SentLog",
    "DeviceToken",
    "AnalyticsEvent",
]
