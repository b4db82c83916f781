from __future__ import annotations

from google import genai
from google.genai import types

from app.ai.types import GenerationParams


class GeminiProvider:
    def __init__(self, api_key: str, timeout_s: float = 60.0):
        key = (api_key or "").strip()
        if not key:
            raise RuntimeError("GOOGLE_AI_API_KEY is missing")

        self._client = genai.Client(
            api_key=key,
            http_options=types.HttpOptions(timeout=int(timeout_s * 1000)),
        )

    async def generate(self, model_id: str, prompt: str, params: GenerationParams) -> str:
        response = await self._client.aio.models.generate_content(
            model=model_id,
            contents=prompt,
            config=types.GenerateContentConfig(
                temperature=params.temperature,
                max_output_tokens=params.max_tokens,
            ),
        )
        return response.text or ""

    async def aclose(self) -> None:
        return None
