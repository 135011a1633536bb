"""
StudyBuddy Backend — ORM Models
================================

    - User:               credential store row (identity + password hash)
    - UserProfileRecord:  document store row (the whole note tree of one user)
"""

from studybuddy.models.profile import UserProfileRecord
from studybuddy.models.user import User

__all__ = ["User", "UserProfileRecord"]
