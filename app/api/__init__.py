"""API routers for the JobSafe API"""

from . import analyze, auth, billing, premium, webhooks

__all__ = ["analyze", "auth", "billing", "premium", "webhooks"]
