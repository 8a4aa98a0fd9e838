"""Database models for JobSafe"""

from .schema import (
    Account,
    Analysis,
    Base,
    GeneratedArtifact,
    Report,
    Subscription,
)

__all__ = [
    "Account",
    "Analysis",
    "Base",
    "GeneratedArtifact",
    "Report",
    "Subscription",
]
