"""SQLAlchemy models package."""

from clientportal.models.user import User
from clientportal.models.client import Client
from clientportal.models.project import Project, Task, TaskComment
from clientportal.models.activity import Message, Notification
from clientportal.models.asset import Credential, File, OnboardingItem

__all__ = [
    # People & organizations
    "User",
    "Client",
    # Work
    "Project",
    "Task",
    "TaskComment",
    # Communication
    "Message",
    "Notification",
    # Assets & onboarding
    "File",
    "Credential",
    "OnboardingItem",
]
