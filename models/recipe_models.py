#!/usr/bin/env python3
"""
Recipe data models - レシピ関連のデータモデル定義

Recipes travel over the AI backend in camelCase; these dataclasses keep the
Python side in snake_case and convert at the boundary.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Dict, Any


DIFFICULTY_LEVELS = ("Easy", "Medium", "Hard")


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


@dataclass
class Substitution:
    """足りない食材の代替案"""
    missing: str
    substitute: str

    def to_dict(self) -> Dict[str, Any]:
        return {"missing": self.missing, "substitute": self.substitute}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Substitution":
        return cls(missing=str(data.get("missing", "")), substitute=str(data.get("substitute", "")))


def _as_substitutions(value: Any) -> List[Substitution]:
    if not isinstance(value, list):
        return []
    return [Substitution.from_dict(item) for item in value if isinstance(item, dict)]


@dataclass
class RecipeDetails:
    """Stage B result: quantities, steps and substitutions for one recipe"""
    ingredients: List[str] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)
    substitutions: List[Substitution] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingredients": list(self.ingredients),
            "instructions": list(self.instructions),
            "substitutions": [s.to_dict() for s in self.substitutions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecipeDetails":
        return cls(
            ingredients=_as_str_list(data.get("ingredients")),
            instructions=_as_str_list(data.get("instructions")),
            substitutions=_as_substitutions(data.get("substitutions")),
        )


@dataclass
class Recipe:
    """
    レシピのデータモデル

    A recipe is partial until ``is_details_loaded`` is True; partial recipes
    carry empty ``instructions`` and ``substitutions``.
    """
    recipe_name: str
    english_recipe_name: str = ""
    description: str = ""
    cuisine: str = ""
    cook_time: int = 0
    difficulty: str = "Medium"
    spiciness: int = 1
    calories: int = 0
    servings: int = 1
    ingredients: List[str] = field(default_factory=list)
    missing_ingredients: List[str] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)
    substitutions: List[Substitution] = field(default_factory=list)
    is_details_loaded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """辞書形式に変換（camelCase）"""
        return {
            "recipeName": self.recipe_name,
            "englishRecipeName": self.english_recipe_name,
            "description": self.description,
            "cuisine": self.cuisine,
            "cookTime": self.cook_time,
            "difficulty": self.difficulty,
            "spiciness": self.spiciness,
            "calories": self.calories,
            "servings": self.servings,
            "ingredients": list(self.ingredients),
            "missingIngredients": list(self.missing_ingredients),
            "instructions": list(self.instructions),
            "substitutions": [s.to_dict() for s in self.substitutions],
            "isDetailsLoaded": self.is_details_loaded,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recipe":
        difficulty = str(data.get("difficulty") or "Medium").capitalize()
        if difficulty not in DIFFICULTY_LEVELS:
            difficulty = "Medium"
        spiciness = min(max(_as_int(data.get("spiciness"), 1), 1), 5)
        return cls(
            recipe_name=str(data.get("recipeName", "")),
            english_recipe_name=str(data.get("englishRecipeName", "")),
            description=str(data.get("description", "")),
            cuisine=str(data.get("cuisine", "")),
            cook_time=_as_int(data.get("cookTime")),
            difficulty=difficulty,
            spiciness=spiciness,
            calories=_as_int(data.get("calories")),
            servings=_as_int(data.get("servings"), 1),
            ingredients=_as_str_list(data.get("ingredients")),
            missing_ingredients=_as_str_list(data.get("missingIngredients")),
            instructions=_as_str_list(data.get("instructions")),
            substitutions=_as_substitutions(data.get("substitutions")),
            is_details_loaded=bool(data.get("isDetailsLoaded", False)),
        )

    @classmethod
    def overview_from_dict(cls, data: Dict[str, Any]) -> "Recipe":
        """Stage A result: detail fields are always reset, whatever the backend sent."""
        recipe = cls.from_dict(data)
        recipe.instructions = []
        recipe.substitutions = []
        recipe.is_details_loaded = False
        return recipe

    def with_details(self, details: RecipeDetails) -> "Recipe":
        """Copy of this recipe with Stage B fields merged in."""
        return replace(
            self,
            ingredients=list(details.ingredients) or list(self.ingredients),
            instructions=list(details.instructions),
            substitutions=list(details.substitutions),
            is_details_loaded=True,
        )


@dataclass
class RecipeFilters:
    """Stage A constraints"""
    cuisine: str = "any"
    servings: int = 2
    spiciness: str = "medium"
    difficulty: str = "medium"
    max_cook_time: int = 45

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cuisine": self.cuisine,
            "servings": self.servings,
            "spiciness": self.spiciness,
            "difficulty": self.difficulty,
            "maxCookTime": self.max_cook_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecipeFilters":
        defaults = cls()
        return cls(
            cuisine=str(data.get("cuisine", defaults.cuisine)),
            servings=_as_int(data.get("servings"), defaults.servings),
            spiciness=str(data.get("spiciness", defaults.spiciness)),
            difficulty=str(data.get("difficulty", defaults.difficulty)),
            max_cook_time=_as_int(data.get("maxCookTime"), defaults.max_cook_time),
        )


@dataclass
class SearchEvent:
    """検索イベント（追記のみ）"""
    recipe_name: str
    search_term: str
    user_id: Optional[str] = None
    created_at: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        row = {
            "user_id": self.user_id,
            "recipe_name": self.recipe_name,
            "search_term": self.search_term,
        }
        if self.created_at:
            row["created_at"] = self.created_at
        return row


@dataclass
class RecipeSearchCount:
    """レシピ検索回数（ベストエフォートのカウンタ）"""
    recipe_name: str
    search_count: int = 0

    def to_row(self) -> Dict[str, Any]:
        return {"recipe_name": self.recipe_name, "search_count": self.search_count}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RecipeSearchCount":
        return cls(recipe_name=str(row.get("recipe_name", "")), search_count=_as_int(row.get("search_count")))


@dataclass
class ChatMessage:
    """AIシェフとの会話メッセージ"""
    role: str  # "user" or "model"
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "parts": [{"text": self.text}]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        parts = data.get("parts") or []
        text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
        return cls(role=str(data.get("role", "user")), text=text)
