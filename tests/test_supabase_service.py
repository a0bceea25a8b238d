#!/usr/bin/env python3
"""
Supabase REST 永続化（SupabaseRestClient / SupabaseService）の単体テスト

PostgREST はメモリ上の簡易実装（httpx.MockTransport）で置き換える。

実行: pytest tests/test_supabase_service.py
"""

import asyncio
import json
import os
import sys

import httpx
import pytest

# プロジェクトルートをパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.exceptions import RemoteRequestError, RemoteUnavailableError
from models import PantryItem, Recipe, UserProfile
from services.supabase_rest import SupabaseRestClient
from services.supabase_service import SupabaseService

SUPABASE_URL = "https://project.supabase.test"
UPSERT_KEYS = {
    "user_profiles": ("id",),
    "user_ingredients": ("user_id", "ingredient_name"),
    "user_saved_recipes": ("user_id", "recipe_name"),
    "recipe_search_counts": ("recipe_name",),
}
RESERVED_PARAMS = ("order", "limit", "select")


def run_async(coro):
    """同期テストから async 関数を実行"""
    return asyncio.run(coro)


class FakePostgrest:
    """テーブルごとの行リストを持つ PostgREST もどき"""

    def __init__(self):
        self.tables = {}
        self.requests = []

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def _matches(self, row, params):
        for key, value in params.items():
            if key in RESERVED_PARAMS:
                continue
            assert value.startswith("eq."), value
            if str(row.get(key)) != value[len("eq."):]:
                return False
        return True

    def __call__(self, request):
        table = request.url.path.rsplit("/", 1)[-1]
        params = dict(request.url.params)
        self.requests.append((request.method, table, params, request.headers.get("prefer", "")))
        rows = self.rows(table)

        if request.method == "GET":
            result = [row for row in rows if self._matches(row, params)]
            if params.get("order") == "search_count.desc":
                result.sort(key=lambda r: r["search_count"], reverse=True)
            if "limit" in params:
                result = result[: int(params["limit"])]
            return httpx.Response(200, json=result)

        if request.method == "DELETE":
            self.tables[table] = [row for row in rows if not self._matches(row, params)]
            return httpx.Response(204)

        if request.method == "POST":
            body = json.loads(request.content)
            merge = "resolution=merge-duplicates" in request.headers.get("prefer", "")
            for record in body:
                keys = UPSERT_KEYS.get(table)
                existing = None
                if keys:
                    existing = next((r for r in rows if all(r.get(k) == record.get(k) for k in keys)), None)
                if existing is not None:
                    if not merge:
                        return httpx.Response(409, json={"message": "duplicate key value violates unique constraint"})
                    existing.update(record)
                else:
                    rows.append(dict(record))
            return httpx.Response(201, json=body)

        return httpx.Response(405)


def make_service(fake=None, url=SUPABASE_URL, anon_key="anon-key"):
    fake = fake or FakePostgrest()
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    rest = SupabaseRestClient(url=url, anon_key=anon_key, client=client)
    return SupabaseService(rest), fake


# --- 1. SupabaseRestClient ---

def test_request_sends_auth_and_prefer_headers():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        return httpx.Response(201, json=[{"id": "u1"}])

    rest = SupabaseRestClient(url=SUPABASE_URL + "/", anon_key="anon-key", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    result = run_async(rest.request("/user_profiles", method="POST", body=[{"id": "u1"}], merge_duplicates=True))

    assert result == [{"id": "u1"}]
    assert seen["url"] == "https://project.supabase.test/rest/v1/user_profiles"
    assert seen["headers"]["apikey"] == "anon-key"
    assert seen["headers"]["authorization"] == "Bearer anon-key"
    assert seen["headers"]["prefer"] == "resolution=merge-duplicates,return=representation"


def test_request_raises_on_non_2xx():
    def handler(request):
        return httpx.Response(401, text='{"message":"Invalid API key"}')

    rest = SupabaseRestClient(url=SUPABASE_URL, anon_key="bad", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(RemoteRequestError) as exc_info:
        run_async(rest.request("/user_ingredients?user_id=eq.u1"))

    assert exc_info.value.status_code == 401
    assert "Invalid API key" in str(exc_info.value)


def test_request_maps_transport_failure():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    rest = SupabaseRestClient(url=SUPABASE_URL, anon_key="anon-key", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(RemoteUnavailableError):
        run_async(rest.request("/user_ingredients"))


def test_empty_body_returns_none():
    rest = SupabaseRestClient(
        url=SUPABASE_URL,
        anon_key="anon-key",
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(204))),
    )

    assert run_async(rest.request("/user_ingredients?user_id=eq.u1", method="DELETE")) is None


def test_unconfigured_client_is_a_noop():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=[])

    service, _ = make_service(url="", anon_key="")
    service.rest._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    assert not service.is_configured
    assert run_async(service.fetch_pantry("u1")) == []
    assert run_async(service.replace_all_pantry("u1", [PantryItem("Egg", "6")])) == []
    assert calls == []


# --- 2. SupabaseService ---

def test_replace_all_pantry_with_empty_list_empties_pantry():
    service, fake = make_service()

    async def scenario():
        await service.replace_all_pantry("u1", [PantryItem("Egg", "6"), PantryItem("Tofu", "1")])
        before = await service.fetch_pantry("u1")
        await service.replace_all_pantry("u1", [])
        after = await service.fetch_pantry("u1")
        return before, after

    before, after = run_async(scenario())

    assert {item.name for item in before} == {"Egg", "Tofu"}
    assert after == []
    # 空リストの場合は DELETE のみ
    assert [r[0] for r in fake.requests[-2:]] == ["DELETE", "GET"]


def test_replace_all_pantry_only_touches_one_user():
    service, _ = make_service()

    async def scenario():
        await service.replace_all_pantry("u1", [PantryItem("Egg", "6")])
        await service.replace_all_pantry("u2", [PantryItem("Milk", "1")])
        await service.replace_all_pantry("u1", [PantryItem("Kimchi", "1")])
        return await service.fetch_pantry("u1"), await service.fetch_pantry("u2")

    mine, theirs = run_async(scenario())

    assert mine == [PantryItem("Kimchi", "1")]
    assert theirs == [PantryItem("Milk", "1")]


def test_append_pantry_item_merges_by_name():
    service, _ = make_service()

    async def scenario():
        await service.append_pantry_item("u1", PantryItem("Egg", "6"))
        await service.append_pantry_item("u1", PantryItem("Egg", "12"))
        return await service.fetch_pantry("u1")

    assert run_async(scenario()) == [PantryItem("Egg", "12")]


def test_saved_recipes_round_trip_through_recipe_data():
    service, fake = make_service()
    recipe = Recipe(recipe_name="Bibimbap", cuisine="korean", ingredients=["Rice"], is_details_loaded=True)

    async def scenario():
        await service.replace_all_saved_recipes("u1", [recipe])
        return await service.fetch_saved_recipes("u1")

    saved = run_async(scenario())

    assert saved == [recipe]
    assert fake.rows("user_saved_recipes")[0]["recipe_name"] == "Bibimbap"


def test_save_profile_upserts_by_id():
    service, fake = make_service()

    async def scenario():
        await service.save_profile(UserProfile(id="u1", email="cook@example.com", display_name="cook"))
        return await service.save_profile(
            UserProfile(id="u1", email="cook@example.com", display_name="cook", has_completed_onboarding=True)
        )

    profile = run_async(scenario())

    assert profile.has_completed_onboarding is True
    assert len(fake.rows("user_profiles")) == 1


def test_popularity_counter_increments_sequentially():
    service, fake = make_service()
    fake.rows("recipe_search_counts").append({"recipe_name": "Bibimbap", "search_count": 5})

    async def scenario():
        first = await service.bump_popularity_counter("Bibimbap")
        second = await service.bump_popularity_counter("Bibimbap")
        return first, second

    first, second = run_async(scenario())

    assert first.search_count == 6
    assert second.search_count == 7
    assert fake.rows("recipe_search_counts") == [{"recipe_name": "Bibimbap", "search_count": 7}]


def test_record_recipe_search_appends_event_and_bumps_counter():
    service, fake = make_service()

    counter = run_async(service.record_recipe_search("  Japchae ", user_id="u1"))

    assert counter.search_count == 1
    assert fake.rows("search_events") == [{"user_id": "u1", "recipe_name": "Japchae", "search_term": "Japchae"}]


def test_fetch_popular_orders_by_count():
    service, fake = make_service()
    fake.rows("recipe_search_counts").extend([
        {"recipe_name": "Japchae", "search_count": 2},
        {"recipe_name": "Bibimbap", "search_count": 9},
        {"recipe_name": "Tteokbokki", "search_count": 4},
    ])

    popular = run_async(service.fetch_popular(limit=2))

    assert [p.recipe_name for p in popular] == ["Bibimbap", "Tteokbokki"]


def test_user_id_is_required():
    service, _ = make_service()

    with pytest.raises(ValueError):
        run_async(service.fetch_pantry(""))
    with pytest.raises(ValueError):
        run_async(service.replace_all_saved_recipes("", []))
