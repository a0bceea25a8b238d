#!/usr/bin/env python3
"""
Constants - アプリケーション定数定義

Client-wide constants and environment-derived settings.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# AI backend
AI_BACKEND_URL = os.getenv("AI_BACKEND_URL", "http://localhost:8000/api/ai")
AI_REQUEST_TIMEOUT = float(os.getenv("AI_REQUEST_TIMEOUT", "60"))

# Retry policy for the AI backend
MAX_ATTEMPTS = 3
INITIAL_BACKOFF_SECONDS = 1.0
BACKOFF_FACTOR = 2
RETRYABLE_ERROR_MARKERS = ("overloaded", "503")

# AI backend actions
ACTION_RECIPE_RECOMMENDATIONS = "getRecipeRecommendations"
ACTION_RECIPE_DETAILS = "getRecipeDetails"
ACTION_ANALYZE_RECEIPT = "analyzeReceipt"
ACTION_CHAT_WITH_AI_CHEF = "chatWithAIChef"

# Remote store (Supabase PostgREST)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_REQUEST_TIMEOUT = float(os.getenv("SUPABASE_REQUEST_TIMEOUT", "15"))

TABLE_USER_PROFILES = "user_profiles"
TABLE_USER_INGREDIENTS = "user_ingredients"
TABLE_USER_SAVED_RECIPES = "user_saved_recipes"
TABLE_SEARCH_EVENTS = "search_events"
TABLE_RECIPE_SEARCH_COUNTS = "recipe_search_counts"

PREFER_MERGE_DUPLICATES = "resolution=merge-duplicates"
PREFER_RETURN_REPRESENTATION = "return=representation"

# Local cache
CACHE_DIR = os.getenv("OHMYCOOK_CACHE_DIR", ".ohmycook_cache")
GUEST_CACHE_SCOPE = "guest"
CACHE_KIND_SETTINGS = "settings"
CACHE_KIND_PANTRY = "ingredients"
CACHE_KIND_SAVED_RECIPES = "savedrecipes"
CACHE_KIND_SHOPPING_LIST = "shoppinglist"
SESSION_CACHE_KEY = "supabase-session"

# Session refresh margin (seconds before expiry)
SESSION_REFRESH_MARGIN_SECONDS = 60

# Defaults
DEFAULT_PANTRY_QUANTITY = os.getenv("DEFAULT_PANTRY_QUANTITY", "1")
DEFAULT_POPULAR_LIMIT = 10
GENERAL_CHAT_KEY = "__general__"
