#!/usr/bin/env python3
"""
SyncEngine - ローカルファースト同期エンジン

Per-session state machine::

    NO_SESSION -> LOCAL_LOADED -> REMOTE_RECONCILING -> SYNCED

On session start the four user-scoped collections are read from the local
cache synchronously, then the profile upsert and the remote pantry / saved
recipe fetches run concurrently. Once both fetches settle the remote snapshot
replaces the in-memory state and the per-collection gates open. Local
mutations always hit the cache immediately; pantry and saved-recipe mutations
are pushed as full-collection replacements only while their gate is open.

The engine must be driven from a running asyncio event loop: session start
and remote pushes schedule tasks on it and raise ``RuntimeError`` without one.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from config.constants import (
    CACHE_KIND_PANTRY,
    CACHE_KIND_SAVED_RECIPES,
    CACHE_KIND_SETTINGS,
    CACHE_KIND_SHOPPING_LIST,
    DEFAULT_PANTRY_QUANTITY,
)
from config.loggers import GenericLogger
from core.event_bus import AuthEvent, AuthStateChange, EventBus, Subscription
from models import PantryItem, Recipe, SessionUser, ShoppingListItem, UserSettings
from .local_cache import LocalCache, scoped_key
from .supabase_service import SupabaseService


class SyncState(Enum):
    NO_SESSION = "no_session"
    LOCAL_LOADED = "local_loaded"
    REMOTE_RECONCILING = "remote_reconciling"
    SYNCED = "synced"


COLLECTION_PANTRY = "pantry"
COLLECTION_SAVED_RECIPES = "saved_recipes"


def _parse_list(parser):
    def parse(raw: Any) -> list:
        if not isinstance(raw, list):
            raise ValueError("cached collection is not a list")
        return [parser(item) for item in raw]
    return parse


class SyncEngine:
    """ユーザーデータのローカルキャッシュとリモートストアを同期"""

    def __init__(self, persistence: SupabaseService, cache: Optional[LocalCache] = None):
        self.persistence = persistence
        self.cache = cache or LocalCache()
        self.logger = GenericLogger("service", "sync_engine")

        self.state = SyncState.NO_SESSION
        self.current_user: Optional[SessionUser] = None
        self.settings = UserSettings()
        self.pantry: List[PantryItem] = []
        self.saved_recipes: List[Recipe] = []
        self.shopping_list: List[ShoppingListItem] = []
        self.pantry_loaded = False
        self.saved_recipes_loaded = False

        # Bumped on every session change; stale completions compare against it
        self._generation = 0
        self._tasks: Set[asyncio.Task] = set()
        self._push_locks: Dict[str, asyncio.Lock] = {}
        self._subscription: Optional[Subscription] = None

    # ============================================================================
    # 認証イベント
    # ============================================================================

    def attach(self, bus: EventBus) -> Subscription:
        """認証イベントバスを購読"""
        self.detach()
        self._subscription = bus.subscribe(self._on_auth_event)
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_auth_event(self, change: AuthStateChange) -> None:
        if change.event == AuthEvent.SIGNED_IN and change.session is not None:
            user = change.session.user
            if self.current_user is None or self.current_user.id != user.id:
                self.start_session(user)
        elif change.event == AuthEvent.SIGNED_OUT:
            self.logout()

    # ============================================================================
    # セッション
    # ============================================================================

    def start_session(self, user: SessionUser) -> "asyncio.Task[None]":
        """
        セッション開始: ローカルキャッシュを同期的に読み込み、リモート同期を開始

        Returns:
            The reconciliation task (fire-and-forget; awaiting it is optional)
        """
        # ループ外からの呼び出しでは状態を変更しない
        loop = self._running_loop()

        self._generation += 1
        generation = self._generation

        self.current_user = user
        self.pantry_loaded = False
        self.saved_recipes_loaded = False
        self._load_local(user.id)
        self.state = SyncState.LOCAL_LOADED
        self.logger.info(f"🔐 [SYNC] Session started for user {user.id}; local cache loaded")

        self.state = SyncState.REMOTE_RECONCILING
        return self._spawn(loop, self._reconcile(user, generation))

    def logout(self) -> None:
        """メモリ上の状態を初期化（ユーザー別キャッシュは残す）"""
        self._generation += 1
        previous = self.current_user
        self.current_user = None
        self._reset_state()
        self.state = SyncState.NO_SESSION
        if previous:
            self.logger.info(f"🔐 [SYNC] User {previous.id} logged out; cache entries kept")

    def _reset_state(self) -> None:
        self.settings = UserSettings()
        self.pantry = []
        self.saved_recipes = []
        self.shopping_list = []
        self.pantry_loaded = False
        self.saved_recipes_loaded = False

    def _load_local(self, user_id: Optional[str]) -> None:
        self.settings = self.cache.load(
            scoped_key(CACHE_KIND_SETTINGS, user_id), UserSettings, UserSettings.from_dict
        )
        self.pantry = self.cache.load(
            scoped_key(CACHE_KIND_PANTRY, user_id), list, _parse_list(PantryItem.from_dict)
        )
        self.saved_recipes = self.cache.load(
            scoped_key(CACHE_KIND_SAVED_RECIPES, user_id), list, _parse_list(Recipe.from_dict)
        )
        self.shopping_list = self.cache.load(
            scoped_key(CACHE_KIND_SHOPPING_LIST, user_id), list, _parse_list(ShoppingListItem.from_dict)
        )

    def load_guest(self) -> None:
        """未ログイン状態でゲスト用キャッシュを読み込む"""
        self._load_local(None)

    async def _reconcile(self, user: SessionUser, generation: int) -> None:
        profile = user.to_profile(self.settings.preferred_cuisines)

        _, remote_pantry, remote_saved = await asyncio.gather(
            self._save_profile_safely(profile),
            self._fetch_safely("pantry", self.persistence.fetch_pantry(user.id)),
            self._fetch_safely("saved recipes", self.persistence.fetch_saved_recipes(user.id)),
        )

        if generation != self._generation:
            self.logger.debug(f"🔍 [SYNC] Discarding reconciliation for stale session of user {user.id}")
            return

        if self.persistence.is_configured:
            self.pantry = remote_pantry
            self.saved_recipes = remote_saved
            self._persist_local(CACHE_KIND_PANTRY)
            self._persist_local(CACHE_KIND_SAVED_RECIPES)
        else:
            # No remote store: the local cache stays authoritative
            self.logger.debug("🔍 [SYNC] Remote store not configured; keeping local snapshot")

        self.pantry_loaded = True
        self.saved_recipes_loaded = True
        self.state = SyncState.SYNCED
        self.logger.info(
            f"✅ [SYNC] Reconciled user {user.id}: {len(self.pantry)} pantry items, "
            f"{len(self.saved_recipes)} saved recipes"
        )

    async def _save_profile_safely(self, profile) -> None:
        try:
            await self.persistence.save_profile(profile)
        except Exception as e:
            self.logger.error(f"❌ [SYNC] Failed to save profile: {e}")

    async def _fetch_safely(self, label: str, fetch) -> list:
        try:
            return await fetch
        except Exception as e:
            self.logger.warning(f"⚠️ [SYNC] Failed to fetch remote {label}, treating as empty: {e}")
            return []

    # ============================================================================
    # ローカル変更
    # ============================================================================

    def set_pantry(self, items: List[PantryItem]) -> None:
        """在庫を丸ごと設定（名前が重複した場合は後勝ち）"""
        deduped: Dict[str, PantryItem] = {}
        for item in items:
            deduped[item.name] = PantryItem(name=item.name, quantity=item.quantity)
        self.pantry = list(deduped.values())
        self._on_pantry_changed()

    def upsert_pantry_item(self, name: str, quantity: str) -> None:
        for item in self.pantry:
            if item.name == name:
                item.quantity = quantity
                break
        else:
            self.pantry.append(PantryItem(name=name, quantity=quantity))
        self._on_pantry_changed()

    def add_pantry_items(self, names: List[str], quantity: str = DEFAULT_PANTRY_QUANTITY) -> List[str]:
        """まだ在庫にない食材だけを追加。追加した名前を返す"""
        existing = {item.name for item in self.pantry}
        added = []
        for name in names:
            if name and name not in existing:
                self.pantry.append(PantryItem(name=name, quantity=quantity))
                existing.add(name)
                added.append(name)
        if added:
            self._on_pantry_changed()
        return added

    def remove_pantry_item(self, name: str) -> bool:
        remaining = [item for item in self.pantry if item.name != name]
        if len(remaining) == len(self.pantry):
            return False
        self.pantry = remaining
        self._on_pantry_changed()
        return True

    def toggle_saved_recipe(self, recipe: Recipe) -> bool:
        """保存レシピの切り替え。保存状態になった場合 True"""
        if self.is_recipe_saved(recipe.recipe_name):
            self.saved_recipes = [r for r in self.saved_recipes if r.recipe_name != recipe.recipe_name]
            saved = False
        else:
            self.saved_recipes = self.saved_recipes + [recipe]
            saved = True
        self._persist_local(CACHE_KIND_SAVED_RECIPES)
        self._schedule_push(COLLECTION_SAVED_RECIPES)
        return saved

    def is_recipe_saved(self, recipe_name: str) -> bool:
        return any(r.recipe_name == recipe_name for r in self.saved_recipes)

    def toggle_shopping_list_item(self, name: str) -> bool:
        if any(item.name == name for item in self.shopping_list):
            self.shopping_list = [item for item in self.shopping_list if item.name != name]
            added = False
        else:
            self.shopping_list = self.shopping_list + [ShoppingListItem(name=name)]
            added = True
        self._persist_local(CACHE_KIND_SHOPPING_LIST)
        return added

    def set_shopping_list(self, items: List[ShoppingListItem]) -> None:
        self.shopping_list = list(items)
        self._persist_local(CACHE_KIND_SHOPPING_LIST)

    def update_settings(self, settings: UserSettings, initial_ingredients: Optional[List[str]] = None) -> None:
        """
        設定を保存（オンボーディング完了時は初期食材も追加）

        ``preferred_cuisines`` and ``has_completed_onboarding`` are mirrored to
        the profile row; the rest of the settings stay local.
        """
        initial_ingredients = list(initial_ingredients or [])
        loop = self._running_loop() if self.current_user is not None else None
        self.settings = settings
        self._persist_local(CACHE_KIND_SETTINGS)

        if initial_ingredients:
            self.add_pantry_items(initial_ingredients)

        user = self.current_user
        if user is None:
            return

        if initial_ingredients and not user.has_completed_onboarding:
            user.has_completed_onboarding = True

        self._spawn(loop, self._save_profile_safely(user.to_profile(settings.preferred_cuisines)))

    def _on_pantry_changed(self) -> None:
        self._persist_local(CACHE_KIND_PANTRY)
        self._schedule_push(COLLECTION_PANTRY)

    def _persist_local(self, kind: str) -> None:
        user_id = self.current_user.id if self.current_user else None
        if kind == CACHE_KIND_SETTINGS:
            value = self.settings.to_dict()
        elif kind == CACHE_KIND_PANTRY:
            value = [item.to_dict() for item in self.pantry]
        elif kind == CACHE_KIND_SAVED_RECIPES:
            value = [recipe.to_dict() for recipe in self.saved_recipes]
        elif kind == CACHE_KIND_SHOPPING_LIST:
            value = [item.to_dict() for item in self.shopping_list]
        else:
            raise ValueError(f"Unknown cache kind: {kind}")
        self.cache.save(scoped_key(kind, user_id), value)

    # ============================================================================
    # リモートへのプッシュ
    # ============================================================================

    def _gate_open(self, collection: str) -> bool:
        if collection == COLLECTION_PANTRY:
            return self.pantry_loaded
        return self.saved_recipes_loaded

    def _schedule_push(self, collection: str) -> None:
        if self.current_user is None or not self._gate_open(collection):
            self.logger.debug(f"🔒 [SYNC] Push of {collection} held back (gate closed or no session)")
            return
        loop = self._running_loop()
        self._spawn(loop, self._push(collection, self.current_user.id, self._generation))

    async def _push(self, collection: str, user_id: str, generation: int) -> None:
        lock = self._push_locks.setdefault(collection, asyncio.Lock())
        async with lock:
            # Re-check after waiting: the session may have ended or been replaced
            if generation != self._generation or not self._gate_open(collection):
                return
            try:
                if collection == COLLECTION_PANTRY:
                    await self.persistence.replace_all_pantry(user_id, list(self.pantry))
                else:
                    await self.persistence.replace_all_saved_recipes(user_id, list(self.saved_recipes))
            except Exception as e:
                self.logger.error(f"❌ [SYNC] Failed to persist {collection} to Supabase: {e}")

    # ============================================================================
    # バックグラウンドタスク
    # ============================================================================

    def _running_loop(self) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError as e:
            raise RuntimeError("SyncEngine must be driven from a running event loop") from e

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro) -> asyncio.Task:
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """未完了のバックグラウンド処理をすべて待つ"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
