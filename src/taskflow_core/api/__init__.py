"""HTTP API for Taskflow Core."""
