"""
Repository Layer Package.

Data-access abstractions over the hosted Supabase backend.  Services
never touch ``db.supabase`` table builders directly.

Usage:
    from session_core.repositories.profile_repository import ProfileRepository
    from session_core.repositories.bootstrap_repository import BootstrapRepository
"""

from session_core.repositories.base_repository import BaseRepository
from session_core.repositories.bootstrap_repository import BootstrapRepository
from session_core.repositories.profile_repository import ProfileRepository

__all__ = [
    "BaseRepository",
    "BootstrapRepository",
    "ProfileRepository",
]
