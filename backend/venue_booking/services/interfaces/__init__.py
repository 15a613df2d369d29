"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .resource_lock import ResourceLockStrategy
from .local_lock import LocalResourceLock

__all__ = ['ResourceLockStrategy', 'LocalResourceLock']
