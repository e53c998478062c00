"""SQLAlchemy models package."""

from assetgate.models.user import User
from assetgate.models.product import Product
from assetgate.models.purchase import Purchase, PaymentStatus
from assetgate.models.system_template import SystemTemplate
from assetgate.models.file import FileEntity
from assetgate.models.lesson_plan import LessonPlan
from assetgate.models.video import Workshop, Course

__all__ = [
    "User",
    "Product",
    "Purchase",
    "PaymentStatus",
    "SystemTemplate",
    "FileEntity",
    "LessonPlan",
    "Workshop",
    "Course",
]
