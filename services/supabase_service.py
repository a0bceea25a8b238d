#!/usr/bin/env python3
"""
SupabaseService - リモート永続化のドメイン操作

Profile upsert, destructive full-collection replacement of pantry and saved
recipes, popularity counters and filtered reads, all built on
``SupabaseRestClient.request``.

Known gap: ``bump_popularity_counter`` is read-increment-write without a
transaction. Concurrent searches for the same recipe name can both read N and
both write N+1, so the counter is best effort. Recounting from the append-only
``search_events`` log is not implemented.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from config.constants import (
    DEFAULT_POPULAR_LIMIT,
    TABLE_RECIPE_SEARCH_COUNTS,
    TABLE_SEARCH_EVENTS,
    TABLE_USER_INGREDIENTS,
    TABLE_USER_PROFILES,
    TABLE_USER_SAVED_RECIPES,
)
from config.loggers import GenericLogger
from models import PantryItem, Recipe, RecipeSearchCount, SearchEvent, UserProfile
from .supabase_rest import SupabaseRestClient


def encode_filter(value: str) -> str:
    """PostgREST の eq フィルタ値をエンコード"""
    return quote(value, safe="")


def _first_row(rows: Any) -> Optional[Dict[str, Any]]:
    if isinstance(rows, list) and rows:
        return rows[0]
    return None


def _require_user_id(user_id: str, purpose: str) -> None:
    if not user_id:
        raise ValueError(f"User ID is required to {purpose}.")


class SupabaseService:
    """リモートストアに対するドメイン操作"""

    def __init__(self, rest: Optional[SupabaseRestClient] = None):
        self.rest = rest or SupabaseRestClient()
        self.logger = GenericLogger("service", "supabase")

    @property
    def is_configured(self) -> bool:
        return self.rest.is_configured

    # ============================================================================
    # プロフィール
    # ============================================================================

    async def save_profile(self, profile: UserProfile) -> Optional[UserProfile]:
        """プロフィールを id をキーに upsert（常に完全なオブジェクトを送信）"""
        _require_user_id(profile.id, "save a profile")
        self.logger.debug(f"🔍 [SUPABASE] Upserting profile for user: {profile.id}")

        rows = await self.rest.request(
            f"/{TABLE_USER_PROFILES}",
            method="POST",
            body=[profile.to_row()],
            merge_duplicates=True,
        )
        row = _first_row(rows)
        return UserProfile.from_row(row) if row else None

    # ============================================================================
    # 在庫（パントリー）
    # ============================================================================

    async def fetch_pantry(self, user_id: str) -> List[PantryItem]:
        _require_user_id(user_id, "fetch ingredients")
        rows = await self.rest.request(f"/{TABLE_USER_INGREDIENTS}?user_id=eq.{encode_filter(user_id)}")
        return [PantryItem.from_row(row) for row in rows or []]

    async def replace_all_pantry(self, user_id: str, items: List[PantryItem]) -> List[PantryItem]:
        """
        ユーザーの在庫を丸ごと置き換える（破壊的）

        Deletes every row for ``user_id`` and then inserts ``items``. Items not
        included are lost; an empty list leaves the pantry empty.
        """
        _require_user_id(user_id, "update ingredients")
        self.logger.info(f"🗑️ [SUPABASE] Replacing pantry for user {user_id} with {len(items)} items")

        await self.rest.request(
            f"/{TABLE_USER_INGREDIENTS}?user_id=eq.{encode_filter(user_id)}",
            method="DELETE",
        )

        if not items:
            return []

        rows = await self.rest.request(
            f"/{TABLE_USER_INGREDIENTS}",
            method="POST",
            body=[item.to_row(user_id) for item in items],
        )
        return [PantryItem.from_row(row) for row in rows or []]

    async def append_pantry_item(self, user_id: str, item: PantryItem) -> Optional[PantryItem]:
        """在庫を1件 upsert（user_id + ingredient_name で一意）"""
        _require_user_id(user_id, "update ingredients")
        rows = await self.rest.request(
            f"/{TABLE_USER_INGREDIENTS}",
            method="POST",
            body=[item.to_row(user_id)],
            merge_duplicates=True,
        )
        row = _first_row(rows)
        return PantryItem.from_row(row) if row else None

    # ============================================================================
    # 保存レシピ
    # ============================================================================

    async def fetch_saved_recipes(self, user_id: str) -> List[Recipe]:
        _require_user_id(user_id, "fetch saved recipes")
        rows = await self.rest.request(f"/{TABLE_USER_SAVED_RECIPES}?user_id=eq.{encode_filter(user_id)}")
        recipes = []
        for row in rows or []:
            recipe_data = row.get("recipe_data")
            if isinstance(recipe_data, dict):
                recipes.append(Recipe.from_dict(recipe_data))
        return recipes

    async def replace_all_saved_recipes(self, user_id: str, recipes: List[Recipe]) -> List[Recipe]:
        """保存レシピを丸ごと置き換える（破壊的、(user_id, recipe_name) がキー）"""
        _require_user_id(user_id, "update saved recipes")
        self.logger.info(f"🗑️ [SUPABASE] Replacing saved recipes for user {user_id} with {len(recipes)} recipes")

        await self.rest.request(
            f"/{TABLE_USER_SAVED_RECIPES}?user_id=eq.{encode_filter(user_id)}",
            method="DELETE",
        )

        if not recipes:
            return []

        records = [
            {"user_id": user_id, "recipe_name": recipe.recipe_name, "recipe_data": recipe.to_dict()}
            for recipe in recipes
        ]
        rows = await self.rest.request(f"/{TABLE_USER_SAVED_RECIPES}", method="POST", body=records)
        return [Recipe.from_dict(row["recipe_data"]) for row in rows or [] if isinstance(row.get("recipe_data"), dict)]

    # ============================================================================
    # 検索イベント・人気カウンタ
    # ============================================================================

    async def append_search_event(self, event: SearchEvent) -> None:
        await self.rest.request(f"/{TABLE_SEARCH_EVENTS}", method="POST", body=[event.to_row()])

    async def bump_popularity_counter(self, recipe_name: str) -> Optional[RecipeSearchCount]:
        """
        検索回数を +1 する（ベストエフォート）

        Read, increment, then upsert. Not atomic: concurrent bumps for the same
        name may lose increments.
        """
        existing = await self.rest.request(
            f"/{TABLE_RECIPE_SEARCH_COUNTS}?recipe_name=eq.{encode_filter(recipe_name)}"
        )
        current = _first_row(existing)
        next_count = (RecipeSearchCount.from_row(current).search_count if current else 0) + 1

        rows = await self.rest.request(
            f"/{TABLE_RECIPE_SEARCH_COUNTS}",
            method="POST",
            body=[RecipeSearchCount(recipe_name=recipe_name, search_count=next_count).to_row()],
            merge_duplicates=True,
        )
        row = _first_row(rows)
        return RecipeSearchCount.from_row(row) if row else None

    async def record_recipe_search(
        self,
        recipe_name: str,
        user_id: Optional[str] = None,
        search_term: Optional[str] = None,
    ) -> Optional[RecipeSearchCount]:
        """検索イベントを追記し、人気カウンタを更新"""
        recipe_label = recipe_name.strip()
        if not recipe_label:
            raise ValueError("Recipe name is required to record a search.")
        term = (search_term or recipe_label).strip()

        await self.append_search_event(SearchEvent(recipe_name=recipe_label, search_term=term, user_id=user_id))
        counter = await self.bump_popularity_counter(recipe_label)
        self.logger.debug(f"📊 [SUPABASE] Search recorded for '{recipe_label}'")
        return counter

    async def fetch_popular(self, limit: int = DEFAULT_POPULAR_LIMIT) -> List[RecipeSearchCount]:
        rows = await self.rest.request(
            f"/{TABLE_RECIPE_SEARCH_COUNTS}?order=search_count.desc&limit={int(limit)}"
        )
        return [RecipeSearchCount.from_row(row) for row in rows or []]
