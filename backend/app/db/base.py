from app.db.base_class import Base

# Import tất cả models để Base.metadata có đủ table
from app.models.user import User
from app.models.teacher_student import TeacherStudent
from app.models.conversation import Conversation, Message
from app.models.token_log import TokenLog
from app.models.daily_exercise_usage import DailyExerciseUsage
from app.models.payment import PaymentRequest, Subscription
from app.models.notification import Notification
from app.models.assignment import Assignment, StudentAssignment
from app.models.lesson import Lesson
from app.models.admin_activity_log import AdminActivityLog
