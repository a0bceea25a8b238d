"""
Data models package
"""

from models.recipe_models import (
    Recipe,
    RecipeDetails,
    RecipeFilters,
    Substitution,
    SearchEvent,
    RecipeSearchCount,
    ChatMessage,
)
from models.user_models import (
    PantryItem,
    ShoppingListItem,
    UserSettings,
    UserProfile,
    SessionUser,
    AuthSession,
)

__all__ = [
    "Recipe",
    "RecipeDetails",
    "RecipeFilters",
    "Substitution",
    "SearchEvent",
    "RecipeSearchCount",
    "ChatMessage",
    "PantryItem",
    "ShoppingListItem",
    "UserSettings",
    "UserProfile",
    "SessionUser",
    "AuthSession",
]
