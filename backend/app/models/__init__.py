from app.models.user import User
from app.models.teacher_student import TeacherStudent
from app.models.conversation import Conversation, Message
from app.models.token_log import TokenLog
from app.models.daily_exercise_usage import DailyExerciseUsage
from app.models.payment import PaymentRequest, PaymentStatus, Subscription, SubscriptionStatus
from app.models.notification import Notification, NotificationType
from app.models.assignment import Assignment, StudentAssignment, SubmissionStatus
from app.models.lesson import Lesson
from app.models.admin_activity_log import AdminActivityLog

__all__ = [
    "User",
    "TeacherStudent",
    "Conversation",
    "Message",
    "TokenLog",
    "DailyExerciseUsage",
    "PaymentRequest",
    "PaymentStatus",
    "Subscription",
    "SubscriptionStatus",
    "Notification",
    "NotificationType",
    "Assignment",
    "StudentAssignment",
    "SubmissionStatus",
    "Lesson",
    "AdminActivityLog",
]
