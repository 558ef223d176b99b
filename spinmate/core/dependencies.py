"""
Dependency injection for FastAPI endpoints.
"""
from uuid import UUID

from fastapi import Header

from spinmate.core.config import settings
from spinmate.services.database import DatabaseService


def get_database_service() -> DatabaseService:
    """Get database service instance with proper configuration."""
    return DatabaseService(settings.supabase_url, settings.supabase_key)


def get_acting_player_id(x_player_id: UUID = Header(..., description="ID of the acting player")) -> UUID:
    """Identity of whoever issues a confirmation, score or winner command."""
    return x_player_id
