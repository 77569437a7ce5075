"""Supabase storage provider implementations."""

from .project_repo import SupabaseProjectRepo

__all__ = ["SupabaseProjectRepo"]
