"""
Core module - Pure domain logic with no external dependencies.

This module contains:
- domain/: Entities and domain events
- ports/: Abstract interfaces that adapters must implement, and the
  exception hierarchy
"""

from .domain import *
from .ports import *
