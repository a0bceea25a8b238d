#!/usr/bin/env python3
"""
API層 - AIルート

POST /api/ai: {action, payload} を受け取り、LLM の結果を {result} で返す
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.constants import (
    ACTION_ANALYZE_RECEIPT,
    ACTION_CHAT_WITH_AI_CHEF,
    ACTION_RECIPE_DETAILS,
    ACTION_RECIPE_RECOMMENDATIONS,
)
from config.loggers import GenericLogger
from services.llm.chef_llm import ChefLLM

router = APIRouter()
logger = GenericLogger("api", "ai")

SUPPORTED_ACTIONS = (
    ACTION_RECIPE_RECOMMENDATIONS,
    ACTION_RECIPE_DETAILS,
    ACTION_ANALYZE_RECEIPT,
    ACTION_CHAT_WITH_AI_CHEF,
)

_chef_llm: Optional[ChefLLM] = None


class AIRequest(BaseModel):
    """AIバックエンドへのリクエスト"""
    action: str = Field(..., description="getRecipeRecommendations | getRecipeDetails | analyzeReceipt | chatWithAIChef")
    payload: Dict[str, Any] = Field(default_factory=dict)


def get_chef_llm() -> ChefLLM:
    """ChefLLM を遅延生成（OPENAI_API_KEY 未設定なら ValueError）"""
    global _chef_llm
    if _chef_llm is None:
        _chef_llm = ChefLLM()
    return _chef_llm


async def dispatch(llm: ChefLLM, action: str, payload: Dict[str, Any]) -> Any:
    if action == ACTION_RECIPE_RECOMMENDATIONS:
        return await llm.generate_overview(
            payload.get("ingredients", []),
            payload.get("priorityIngredients", []),
            payload.get("filters", {}),
            payload.get("language", "en"),
        )
    if action == ACTION_RECIPE_DETAILS:
        return await llm.generate_details(
            payload["recipeName"],
            payload.get("ingredients", []),
            payload.get("language", "en"),
        )
    if action == ACTION_ANALYZE_RECEIPT:
        return await llm.analyze_receipt(payload["base64Image"])
    if action == ACTION_CHAT_WITH_AI_CHEF:
        return await llm.chat(
            payload.get("history", []),
            payload["message"],
            payload.get("settings", {}),
            payload.get("language", "en"),
            payload.get("recipeContext"),
        )
    raise ValueError(f"Invalid action: {action}")


@router.post("/ai")
async def handle_ai_request(request: AIRequest) -> JSONResponse:
    """AIアクションを実行するエンドポイント"""
    logger.info(f"🔍 [API] AIリクエストを受信しました: action={request.action}")

    try:
        llm = get_chef_llm()
    except ValueError as e:
        logger.error(f"❌ [API] LLMクライアントの初期化に失敗しました: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Server configuration error: OPENAI_API_KEY is missing."},
        )

    if request.action not in SUPPORTED_ACTIONS:
        logger.warning(f"⚠️ [API] Invalid action: {request.action}")
        return JSONResponse(status_code=400, content={"error": f"Invalid action: {request.action}"})

    try:
        result = await dispatch(llm, request.action, request.payload)
    except Exception as e:
        logger.error(f"❌ [API] {request.action} の処理中にエラーが発生しました: {e}")
        return JSONResponse(status_code=500, content={"error": str(e) or "An unknown internal server error occurred."})

    logger.info(f"✅ [API] {request.action} completed")
    return JSONResponse(status_code=200, content={"result": result})
