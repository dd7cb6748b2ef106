from app.models.user import User, UserRole
from app.models.auth_token import EmailVerificationToken, PasswordResetToken, RefreshToken
from app.models.topic import ContentStatus, Topic, TopicCategory
from app.models.material import Lang, Material, MaterialType
from app.models.quiz import Difficulty, Option, Question, Quiz
from app.models.attempt import Answer, QuizAttempt
from app.models.file import File, FileCategory, FileVisibility
from app.models.audit import AuditLog
from app.models.progress import MaterialView, UserActivity

__all__ = [
    "User",
    "UserRole",
    "RefreshToken",
    "PasswordResetToken",
    "EmailVerificationToken",
    "Topic",
    "TopicCategory",
    "ContentStatus",
    "Material",
    "MaterialType",
    "Lang",
    "Quiz",
    "Question",
    "Option",
    "Difficulty",
    "QuizAttempt",
    "Answer",
    "File",
    "FileCategory",
    "FileVisibility",
    "AuditLog",
    "MaterialView",
    "UserActivity",
]
