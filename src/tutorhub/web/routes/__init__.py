"""API route modules."""

from tutorhub.web.routes.admin import router as admin_router
from tutorhub.web.routes.auth import router as auth_router
from tutorhub.web.routes.documents import router as documents_router
from tutorhub.web.routes.exams import router as exams_router
from tutorhub.web.routes.health import router as health_router
from tutorhub.web.routes.messages import router as messages_router
from tutorhub.web.routes.notifications import router as notifications_router
from tutorhub.web.routes.planner import router as planner_router
from tutorhub.web.routes.sessions import router as sessions_router
from tutorhub.web.routes.tutors import router as tutors_router
from tutorhub.web.routes.users import router as users_router

__all__ = [
    "admin_router",
    "auth_router",
    "documents_router",
    "exams_router",
    "health_router",
    "messages_router",
    "notifications_router",
    "planner_router",
    "sessions_router",
    "tutors_router",
    "users_router",
]
