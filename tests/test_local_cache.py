#!/usr/bin/env python3
"""
LocalCache の単体テスト

実行: pytest tests/test_local_cache.py
"""

import os
import sys

# プロジェクトルートをパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import UserSettings
from services.local_cache import LocalCache, scoped_key


def test_scoped_key_uses_guest_without_user():
    assert scoped_key("ingredients", "user-1") == "ingredients-user-1"
    assert scoped_key("ingredients", None) == "ingredients-guest"


def test_missing_entry_returns_default(tmp_path):
    cache = LocalCache(str(tmp_path))

    assert cache.load("settings-user-1", UserSettings, UserSettings.from_dict) == UserSettings()
    assert not cache.exists("settings-user-1")


def test_save_then_load(tmp_path):
    cache = LocalCache(str(tmp_path / "nested"))
    settings = UserSettings(cooking_level="Advanced", allergies=["Peanut"])

    assert cache.save("settings-user-1", settings.to_dict()) is True
    assert cache.load("settings-user-1", UserSettings, UserSettings.from_dict) == settings


def test_corrupt_entry_falls_back_to_default(tmp_path):
    cache = LocalCache(str(tmp_path))
    (tmp_path / "ingredients-user-1.json").write_text("{not json", encoding="utf-8")

    assert cache.load("ingredients-user-1", list) == []


def test_parse_failure_falls_back_to_default(tmp_path):
    cache = LocalCache(str(tmp_path))
    cache.save("settings-user-1", {"spicinessPreference": "very"})

    assert cache.load("settings-user-1", UserSettings, UserSettings.from_dict) == UserSettings()


def test_users_do_not_share_entries(tmp_path):
    cache = LocalCache(str(tmp_path))
    cache.save(scoped_key("ingredients", "user-1"), [{"name": "Egg", "quantity": "6"}])

    assert cache.load(scoped_key("ingredients", "user-2"), list) == []
    assert cache.load(scoped_key("ingredients", None), list) == []


def test_remove(tmp_path):
    cache = LocalCache(str(tmp_path))
    cache.save("supabase-session", {"accessToken": "t"})
    cache.remove("supabase-session")
    cache.remove("supabase-session")

    assert not cache.exists("supabase-session")
