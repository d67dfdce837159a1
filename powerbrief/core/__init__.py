"""
Core module - Database, configuration, observability and error types
"""

from .database import get_supabase_client
from .config import Config

__all__ = ['get_supabase_client', 'Config']
