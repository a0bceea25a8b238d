"""
OhMyCook - Chef LLM Client

LLM-backed handlers for the four AI backend actions: recipe overview,
recipe details, receipt analysis and the AI Chef chat.
"""

import json
import os
import re
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

from config.loggers import GenericLogger

# .envファイルを読み込み
load_dotenv()

OVERVIEW_RECIPE_COUNT = 3
VALID_DIFFICULTIES = ("Easy", "Medium", "Hard")


class ChefLLM:
    """LLM推論クライアント"""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self.logger = GenericLogger("llm", "chef_llm")

        # 環境変数から設定を取得
        self.api_key = os.getenv('OPENAI_API_KEY')
        self.model = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
        self.vision_model = os.getenv('OPENAI_VISION_MODEL', self.model)
        self.temperature = float(os.getenv('OPENAI_TEMPERATURE', '0.7'))

        if client is None:
            if not self.api_key:
                raise ValueError("OPENAI_API_KEY is required")
            client = AsyncOpenAI(api_key=self.api_key)
        self.client = client

        self.logger.debug(f"🤖 [LLM] Initialized (model: {self.model}, temperature: {self.temperature})")

    # ============================================================================
    # Stage A: 概要
    # ============================================================================

    async def generate_overview(
        self,
        ingredients: List[str],
        priority_ingredients: List[str],
        filters: Dict[str, Any],
        language: str = "en",
    ) -> List[Dict[str, Any]]:
        """
        レシピ概要を生成

        Returns:
            Partial recipes: no instructions, no substitutions, ``isDetailsLoaded`` false
        """
        prompt = self._build_overview_prompt(ingredients, priority_ingredients, filters, language)
        self.logger.debug(f"🧠 [LLM] Generating overview for {len(ingredients)} ingredients")

        data = await self._complete_json(prompt, temperature=self.temperature)
        recipes = data.get("recipes", []) if isinstance(data, dict) else data
        if not isinstance(recipes, list):
            raise ValueError("LLM response did not contain a recipe list")

        overview = [self._to_partial_recipe(r) for r in recipes if isinstance(r, dict) and r.get("recipeName")]
        self.logger.info(f"📊 [LLM] Generated {len(overview)} recipe overviews")
        return overview

    def _build_overview_prompt(
        self,
        ingredients: List[str],
        priority_ingredients: List[str],
        filters: Dict[str, Any],
        language: str,
    ) -> str:
        priority_text = ""
        if priority_ingredients:
            priority_text = (
                "\nPRIORITY: You MUST create recipes that prominently feature as many of the "
                f"following priority ingredients as possible: {', '.join(priority_ingredients)}."
            )

        return f"""
You are an expert chef creating recipes for the "OhMyCook" app.
I have the following ingredients: {', '.join(ingredients)}.
Please recommend {OVERVIEW_RECIPE_COUNT} diverse and delicious recipes matching these conditions:
- Cuisine: {filters.get('cuisine', 'any')}
- Servings: {filters.get('servings', 2)}
- Spiciness: {filters.get('spiciness', 'medium')}
- Difficulty: {filters.get('difficulty', 'medium')}
- Max cook time: {filters.get('maxCookTime', 45)} minutes
{priority_text}

This is the OVERVIEW stage.
- Provide the recipe name, description and metadata.
- For 'ingredients', list only ingredient NAMES, without quantities.
- Do not include 'instructions' or 'substitutions' yet.
- If I am missing main ingredients, list their names in 'missingIngredients'.

Answer in {self._language_name(language)} (except 'englishRecipeName').
Respond with JSON in this format:
{{
    "recipes": [
        {{
            "recipeName": "...",
            "englishRecipeName": "...",
            "description": "...",
            "cuisine": "...",
            "cookTime": 30,
            "difficulty": "Easy | Medium | Hard",
            "spiciness": 1,
            "calories": 500,
            "servings": 2,
            "ingredients": ["..."],
            "missingIngredients": ["..."]
        }}
    ]
}}
"""

    @staticmethod
    def _to_partial_recipe(raw: Dict[str, Any]) -> Dict[str, Any]:
        recipe = dict(raw)
        recipe["instructions"] = []
        recipe["substitutions"] = []
        recipe["isDetailsLoaded"] = False
        recipe.setdefault("englishRecipeName", recipe.get("recipeName", ""))
        recipe.setdefault("ingredients", [])
        recipe.setdefault("missingIngredients", [])
        if recipe.get("difficulty") not in VALID_DIFFICULTIES:
            recipe["difficulty"] = "Medium"
        return recipe

    # ============================================================================
    # Stage B: 詳細
    # ============================================================================

    async def generate_details(self, recipe_name: str, ingredients: List[str], language: str = "en") -> Dict[str, Any]:
        """1件のレシピの詳細（分量付き材料・手順・代替案）を生成"""
        prompt = f"""
I have selected the recipe: "{recipe_name}".
My available ingredients are: {', '.join(ingredients)}.

Please provide the DETAILED info for this recipe:
1. 'ingredients': Full list with specific QUANTITIES (e.g., "1/2 onion, chopped", "200g Pork").
2. 'instructions': Step-by-step detailed cooking guide.
3. 'substitutions': If I am missing any required ingredients based on my list, suggest specific substitutions here.

Answer in {self._language_name(language)}.
Respond with JSON in this format:
{{
    "ingredients": ["..."],
    "instructions": ["..."],
    "substitutions": [{{"missing": "...", "substitute": "..."}}]
}}
"""
        self.logger.debug(f"🧠 [LLM] Generating details for '{recipe_name}'")
        data = await self._complete_json(prompt, temperature=0.5)
        if not isinstance(data, dict):
            raise ValueError("LLM response for recipe details must be an object")

        return {
            "ingredients": [str(i) for i in data.get("ingredients", [])],
            "instructions": [str(s) for s in data.get("instructions", [])],
            "substitutions": [
                {"missing": str(s.get("missing", "")), "substitute": str(s.get("substitute", ""))}
                for s in data.get("substitutions", []) or []
                if isinstance(s, dict)
            ],
        }

    # ============================================================================
    # レシート解析
    # ============================================================================

    async def analyze_receipt(self, base64_image: str) -> List[str]:
        """レシート画像から食材名（英語）を抽出"""
        prompt = (
            "Analyze this receipt image. Extract only the names of the food ingredients purchased, in English. "
            'Respond with JSON: {"ingredients": ["Egg", "Green Onion", "Tofu"]}. '
            "Do not include quantities, prices, or any other text."
        )
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"}},
            ],
        }]
        response = await self.client.chat.completions.create(
            model=self.vision_model,
            messages=messages,
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        data = self._parse_json(response.choices[0].message.content or "")
        names = data.get("ingredients", []) if isinstance(data, dict) else data
        if not isinstance(names, list):
            raise ValueError("LLM response did not contain an ingredient list")
        result = [str(n).strip() for n in names if str(n).strip()]
        self.logger.info(f"📊 [LLM] Extracted {len(result)} ingredients from receipt")
        return result

    # ============================================================================
    # AIシェフ チャット
    # ============================================================================

    async def chat(
        self,
        history: List[Dict[str, Any]],
        message: str,
        settings: Dict[str, Any],
        language: str = "en",
        recipe_context: Optional[Dict[str, Any]] = None,
    ) -> str:
        """AIシェフとして返答（history は {role, parts:[{text}]} 形式）"""
        messages = [{"role": "system", "content": self._build_chef_instruction(settings, language, recipe_context)}]
        for entry in history:
            text = "".join(part.get("text", "") for part in entry.get("parts", []))
            role = "assistant" if entry.get("role") == "model" else "user"
            messages.append({"role": role, "content": text})
        messages.append({"role": "user", "content": message})

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
        )
        return response.choices[0].message.content or ""

    def _build_chef_instruction(
        self,
        settings: Dict[str, Any],
        language: str,
        recipe_context: Optional[Dict[str, Any]],
    ) -> str:
        allergies = ", ".join(settings.get("allergies") or []) or "None"
        tools = ", ".join(settings.get("availableTools") or []) or "Basic"
        instruction = (
            "You are 'AI Chef', a helpful and friendly cooking assistant for the OhMyCook app. "
            f"Answer in {self._language_name(language)}. Keep answers concise, friendly, and easy to understand. "
            f"The user's profile is: Cooking Level: {settings.get('cookingLevel', 'Beginner')}, "
            f"Allergies: {allergies}, Available Tools: {tools}."
        )
        if recipe_context:
            instruction += (
                f"\n\nYou are currently assisting with this specific recipe: \"{recipe_context.get('recipeName', '')}\".\n"
                f"- Description: {recipe_context.get('description', '')}\n"
                f"- Ingredients: {', '.join(recipe_context.get('ingredients') or [])}\n\n"
                "Answer any questions in relation to this recipe."
            )
        return instruction

    # ============================================================================
    # 共通処理
    # ============================================================================

    async def _complete_json(self, prompt: str, temperature: float) -> Any:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        return self._parse_json(response.choices[0].message.content or "")

    def _parse_json(self, content: str) -> Any:
        """LLMレスポンスからJSONを取り出す（マークダウンブロックにも対応）"""
        try:
            return json.loads(content.strip())
        except json.JSONDecodeError:
            pass

        json_match = re.search(r'```(?:json)?\s*(.*?)\s*```', content, re.DOTALL)
        if json_match:
            try:
                return json.loads(json_match.group(1).strip())
            except json.JSONDecodeError as e:
                self.logger.warning(f"⚠️ [LLM] マークダウンブロックからのJSON解析に失敗しました: {e}")

        self.logger.debug(f"🔍 [LLM] Response content (first 500 chars): {content[:500]}")
        raise ValueError("LLM response was not valid JSON")

    @staticmethod
    def _language_name(language: str) -> str:
        return "Korean" if language == "ko" else "English"
