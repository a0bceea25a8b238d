#!/usr/bin/env python3
"""
RecipeService - 2段階（概要→詳細）レシピ取得

Stage A (overview) is one cheap backend call returning partial recipes.
Stage B (detail) is fetched lazily, once per recipe name, the first time the
user opens a recipe. ``RecommendationSession`` memoizes Stage B results into
the in-memory overview list so they survive re-renders.
"""

import asyncio
from typing import Any, Dict, List, Optional

from config.constants import (
    ACTION_ANALYZE_RECEIPT,
    ACTION_CHAT_WITH_AI_CHEF,
    ACTION_RECIPE_DETAILS,
    ACTION_RECIPE_RECOMMENDATIONS,
    GENERAL_CHAT_KEY,
)
from config.loggers import GenericLogger
from core.exceptions import AIBackendError, NonRetryableError
from core.executor import ResilientRequestExecutor
from models import ChatMessage, Recipe, RecipeDetails, RecipeFilters, UserSettings
from .supabase_service import SupabaseService


def _unwrap_result(envelope: Any, action: str) -> Any:
    """Success envelope は {"result": ...}"""
    if not isinstance(envelope, dict) or "result" not in envelope:
        raise NonRetryableError(f"Unexpected response shape for {action}", action=action)
    return envelope["result"]


class RecipeService:
    """AIバックエンドのレシピ関連アクション"""

    def __init__(self, executor: Optional[ResilientRequestExecutor] = None):
        self.executor = executor or ResilientRequestExecutor()
        self.logger = GenericLogger("service", "recipe")

    async def get_overview(
        self,
        pantry_names: List[str],
        priority_names: List[str],
        filters: RecipeFilters,
        language: str = "en",
    ) -> List[Recipe]:
        """
        Stage A: レシピ概要を取得

        Args:
            pantry_names: Names of every pantry ingredient
            priority_names: Soft constraint passed through to the backend
            filters: cuisine / servings / spiciness / difficulty / max cook time
            language: "en" or "ko"

        Returns:
            Partial recipes (``is_details_loaded=False``); an empty list means no match
        """
        payload = {
            "ingredients": list(pantry_names),
            "priorityIngredients": list(priority_names),
            "filters": filters.to_dict(),
            "language": language,
        }
        envelope = await self.executor.execute(ACTION_RECIPE_RECOMMENDATIONS, payload)
        result = _unwrap_result(envelope, ACTION_RECIPE_RECOMMENDATIONS)

        if not isinstance(result, list):
            raise NonRetryableError("Recipe recommendations must be a list", action=ACTION_RECIPE_RECOMMENDATIONS)

        recipes = [Recipe.overview_from_dict(item) for item in result if isinstance(item, dict)]
        self.logger.info(f"📊 [RECIPE] Stage A returned {len(recipes)} recipes")
        return recipes

    async def get_details(self, recipe_name: str, pantry_names: List[str], language: str = "en") -> RecipeDetails:
        """Stage B: 1件のレシピの詳細（分量・手順・代替案）を取得"""
        payload = {"recipeName": recipe_name, "ingredients": list(pantry_names), "language": language}
        envelope = await self.executor.execute(ACTION_RECIPE_DETAILS, payload)
        result = _unwrap_result(envelope, ACTION_RECIPE_DETAILS)

        if not isinstance(result, dict):
            raise NonRetryableError("Recipe details must be an object", action=ACTION_RECIPE_DETAILS)
        return RecipeDetails.from_dict(result)

    async def analyze_receipt(self, base64_image: str) -> List[str]:
        """レシート画像から食材名を抽出"""
        envelope = await self.executor.execute(ACTION_ANALYZE_RECEIPT, {"base64Image": base64_image})
        result = _unwrap_result(envelope, ACTION_ANALYZE_RECEIPT)
        if not isinstance(result, list):
            raise NonRetryableError("Receipt analysis must be a list", action=ACTION_ANALYZE_RECEIPT)
        return [str(name) for name in result if str(name).strip()]

    async def chat_with_ai_chef(
        self,
        history: List[ChatMessage],
        message: str,
        settings: UserSettings,
        language: str = "en",
        recipe_context: Optional[Recipe] = None,
    ) -> str:
        """AIシェフとのチャット"""
        payload = {
            "history": [m.to_dict() for m in history],
            "message": message,
            "settings": settings.to_dict(),
            "language": language,
            "recipeContext": recipe_context.to_dict() if recipe_context else None,
        }
        envelope = await self.executor.execute(ACTION_CHAT_WITH_AI_CHEF, payload)
        return str(_unwrap_result(envelope, ACTION_CHAT_WITH_AI_CHEF))


class RecommendationSession:
    """
    One recommendation screen: the Stage A result list plus memoized Stage B.

    ``status`` is one of ``idle``, ``loading``, ``loaded``, ``no_results`` or
    ``error``.
    """

    def __init__(
        self,
        recipe_service: RecipeService,
        popularity: Optional[SupabaseService] = None,
        user_id: Optional[str] = None,
        language: str = "en",
    ):
        self.recipe_service = recipe_service
        self.popularity = popularity
        self.user_id = user_id
        self.language = language
        self.recipes: List[Recipe] = []
        self.pantry_names: List[str] = []
        self.status = "idle"
        self.error: Optional[str] = None
        self.detail_errors: Dict[str, str] = {}
        self._generation = 0
        self._in_flight: Dict[str, "asyncio.Task[Recipe]"] = {}
        self._background: set = set()
        self.logger = GenericLogger("service", "recommendation")

    async def search(
        self,
        pantry_names: List[str],
        priority_names: Optional[List[str]] = None,
        filters: Optional[RecipeFilters] = None,
    ) -> List[Recipe]:
        """
        Stage A を実行して結果リストを置き換える

        Raises:
            AIBackendError: the overview call failed; the list stays empty
        """
        self._generation += 1
        generation = self._generation
        self._in_flight.clear()
        self.recipes = []
        self.detail_errors = {}
        self.error = None
        self.pantry_names = list(pantry_names)

        if not pantry_names:
            self.status = "error"
            self.error = "Add ingredients first."
            raise ValueError(self.error)

        self.status = "loading"
        try:
            recipes = await self.recipe_service.get_overview(
                self.pantry_names, list(priority_names or []), filters or RecipeFilters(), self.language
            )
        except AIBackendError as e:
            self.logger.error(f"❌ [RECIPE] Stage A failed: {e.message}")
            if generation == self._generation:
                self.status = "error"
                self.error = e.message
            raise

        if generation != self._generation:
            # A newer search owns the list now
            self.logger.debug("🔍 [RECIPE] Discarding stale overview result")
            return recipes

        self.recipes = recipes
        self.status = "loaded" if recipes else "no_results"
        return recipes

    async def inspect(self, recipe: Recipe) -> Recipe:
        """
        レシピを開く（初回のみ Stage B を実行）

        Returns the memoized recipe when details are already loaded. A second
        call for a name whose details are in flight awaits the same request.

        Raises:
            AIBackendError: Stage B failed; the overview entry is left untouched
        """
        if recipe.is_details_loaded:
            return recipe

        memoized = self._find_loaded(recipe.recipe_name)
        if memoized is not None:
            return memoized

        task = self._in_flight.get(recipe.recipe_name)
        if task is None:
            task = asyncio.ensure_future(self._load_details(recipe, self._generation))
            self._in_flight[recipe.recipe_name] = task

        try:
            return await task
        finally:
            if self._in_flight.get(recipe.recipe_name) is task and task.done():
                del self._in_flight[recipe.recipe_name]

    async def _load_details(self, recipe: Recipe, generation: int) -> Recipe:
        try:
            details = await self.recipe_service.get_details(recipe.recipe_name, self.pantry_names, self.language)
        except AIBackendError as e:
            if generation == self._generation:
                self.detail_errors[recipe.recipe_name] = e.message
            self.logger.error(f"❌ [RECIPE] Stage B failed for '{recipe.recipe_name}': {e.message}")
            raise

        updated = recipe.with_details(details)

        if generation != self._generation:
            # A newer search replaced the list; nothing left to update
            self.logger.debug(f"🔍 [RECIPE] Discarding stale details for '{recipe.recipe_name}'")
            return updated

        self.detail_errors.pop(recipe.recipe_name, None)
        self.recipes = [
            r.with_details(details) if r.recipe_name == recipe.recipe_name else r
            for r in self.recipes
        ]
        self._record_search(recipe.recipe_name)
        return updated

    def _find_loaded(self, recipe_name: str) -> Optional[Recipe]:
        for r in self.recipes:
            if r.recipe_name == recipe_name and r.is_details_loaded:
                return r
        return None

    def _record_search(self, recipe_name: str) -> None:
        if self.popularity is None:
            return
        task = asyncio.ensure_future(self._record_search_safely(recipe_name))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _record_search_safely(self, recipe_name: str) -> None:
        try:
            await self.popularity.record_recipe_search(recipe_name, user_id=self.user_id)
        except Exception as e:
            self.logger.warning(f"⚠️ [RECIPE] Failed to record search for '{recipe_name}': {e}")

    async def drain(self) -> None:
        """Await background popularity writes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


class ChefChat:
    """AIシェフの会話履歴（レシピ名ごと）"""

    def __init__(self, recipe_service: RecipeService, language: str = "en"):
        self.recipe_service = recipe_service
        self.language = language
        self.histories: Dict[str, List[ChatMessage]] = {}
        self.logger = GenericLogger("service", "chef_chat")

    @staticmethod
    def history_key(recipe_context: Optional[Recipe]) -> str:
        return recipe_context.recipe_name if recipe_context else GENERAL_CHAT_KEY

    def history_for(self, recipe_context: Optional[Recipe] = None) -> List[ChatMessage]:
        return list(self.histories.get(self.history_key(recipe_context), []))

    async def send(self, message: str, settings: UserSettings, recipe_context: Optional[Recipe] = None) -> str:
        """
        メッセージを送信して返答を履歴に追加

        The user message stays in the history even when the backend fails, so
        the user can retry from the same point.
        """
        if not message.strip():
            raise ValueError("Message must not be empty.")

        key = self.history_key(recipe_context)
        history = self.histories.setdefault(key, [])
        prior = list(history)
        history.append(ChatMessage(role="user", text=message))

        reply = await self.recipe_service.chat_with_ai_chef(prior, message, settings, self.language, recipe_context)
        history.append(ChatMessage(role="model", text=reply))
        return reply
