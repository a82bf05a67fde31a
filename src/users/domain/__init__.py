"""
Users Domain Layer
==================

Pure Python user entity. No infrastructure dependencies.
"""

from users.domain.entities import User

__all__ = ["User"]
