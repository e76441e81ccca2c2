"""
Application - Services built on top of the data access stack.
"""

from .custom_fields import CustomFieldLearningCache

__all__ = ["CustomFieldLearningCache"]
