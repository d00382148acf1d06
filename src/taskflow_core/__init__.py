"""Taskflow Core: department-scoped permissions and transactional consistency."""

__version__ = "1.0.0"
