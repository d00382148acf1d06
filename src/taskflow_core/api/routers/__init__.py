"""API routers for Taskflow Core."""

from . import auth, chat, departments, profile, projects, reports, tasks, users

__all__ = ["auth", "chat", "departments", "profile", "projects", "reports", "tasks", "users"]
