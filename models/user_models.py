#!/usr/bin/env python3
"""
User data models - ユーザー関連のデータモデル定義

Pantry items, settings, profile rows and session identities.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


@dataclass
class PantryItem:
    """在庫食材（名前で一意、大文字小文字を区別）"""
    name: str
    quantity: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PantryItem":
        return cls(name=str(data["name"]), quantity=str(data.get("quantity", "")))

    def to_row(self, user_id: str) -> Dict[str, Any]:
        return {"user_id": user_id, "ingredient_name": self.name, "quantity": self.quantity}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PantryItem":
        return cls(name=str(row.get("ingredient_name", "")), quantity=str(row.get("quantity") or ""))


@dataclass
class ShoppingListItem:
    """買い物リストの項目"""
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShoppingListItem":
        return cls(name=str(data["name"]))


@dataclass
class UserSettings:
    """ユーザー設定（ローカルキャッシュのみ）"""
    cooking_level: str = "Beginner"
    allergies: List[str] = field(default_factory=list)
    preferred_cuisines: List[str] = field(default_factory=list)
    disliked_ingredients: List[str] = field(default_factory=list)
    available_tools: List[str] = field(default_factory=list)
    spiciness_preference: int = 3
    max_cook_time: int = 30

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cookingLevel": self.cooking_level,
            "allergies": list(self.allergies),
            "preferredCuisines": list(self.preferred_cuisines),
            "dislikedIngredients": list(self.disliked_ingredients),
            "availableTools": list(self.available_tools),
            "spicinessPreference": self.spiciness_preference,
            "maxCookTime": self.max_cook_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSettings":
        defaults = cls()
        return cls(
            cooking_level=str(data.get("cookingLevel", defaults.cooking_level)),
            allergies=_str_list(data.get("allergies")),
            preferred_cuisines=_str_list(data.get("preferredCuisines")),
            disliked_ingredients=_str_list(data.get("dislikedIngredients")),
            available_tools=_str_list(data.get("availableTools")),
            spiciness_preference=int(data.get("spicinessPreference", defaults.spiciness_preference)),
            max_cook_time=int(data.get("maxCookTime", defaults.max_cook_time)),
        )


@dataclass
class UserProfile:
    """user_profiles テーブルの1行（idでupsert）"""
    id: str
    email: str
    display_name: Optional[str] = None
    has_completed_onboarding: bool = False
    preferred_cuisines: List[str] = field(default_factory=list)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "has_completed_onboarding": self.has_completed_onboarding,
            "preferred_cuisines": list(self.preferred_cuisines),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=str(row.get("id", "")),
            email=str(row.get("email") or ""),
            display_name=row.get("display_name"),
            has_completed_onboarding=bool(row.get("has_completed_onboarding", False)),
            preferred_cuisines=_str_list(row.get("preferred_cuisines")),
        )


@dataclass
class SessionUser:
    """Authenticated identity that scopes the sync engine"""
    id: str
    email: str
    has_completed_onboarding: bool = False

    @property
    def display_name(self) -> str:
        return self.email.split("@")[0]

    def to_profile(self, preferred_cuisines: Optional[List[str]] = None) -> UserProfile:
        return UserProfile(
            id=self.id,
            email=self.email,
            display_name=self.display_name,
            has_completed_onboarding=self.has_completed_onboarding,
            preferred_cuisines=list(preferred_cuisines or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "hasCompletedOnboarding": self.has_completed_onboarding}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionUser":
        return cls(
            id=str(data["id"]),
            email=str(data.get("email") or ""),
            has_completed_onboarding=bool(data.get("hasCompletedOnboarding", False)),
        )


@dataclass
class AuthSession:
    """Supabase auth session persisted in the local cache"""
    access_token: str
    user: SessionUser
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    token_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
            "tokenType": self.token_type,
            "user": self.user.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthSession":
        return cls(
            access_token=str(data["accessToken"]),
            user=SessionUser.from_dict(data["user"]),
            refresh_token=data.get("refreshToken"),
            expires_at=data.get("expiresAt"),
            token_type=data.get("tokenType"),
        )
