#!/usr/bin/env python3
"""
Services Package

AIバックエンド・Supabase・ローカルキャッシュを扱うサービス層
"""

from .auth_service import SessionService
from .local_cache import LocalCache, scoped_key
from .recipe_service import ChefChat, RecipeService, RecommendationSession
from .supabase_rest import SupabaseRestClient
from .supabase_service import SupabaseService
from .sync_engine import SyncEngine, SyncState

__all__ = [
    "SessionService",
    "LocalCache",
    "scoped_key",
    "ChefChat",
    "RecipeService",
    "RecommendationSession",
    "SupabaseRestClient",
    "SupabaseService",
    "SyncEngine",
    "SyncState",
]
