from __future__ import annotations

from typing import Optional

from openai import AsyncOpenAI

from app.ai.types import GenerationParams


class OpenAIProvider:
    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout_s: float = 60.0,
        max_retries: int = 0,
    ):
        key = (api_key or "").strip()
        if not key:
            raise RuntimeError("OPENAI_API_KEY is missing")

        self._client = AsyncOpenAI(
            api_key=key,
            base_url=base_url or None,
            timeout=timeout_s,
            max_retries=max_retries,
        )

    async def generate(self, model_id: str, prompt: str, params: GenerationParams) -> str:
        response = await self._client.chat.completions.create(
            model=model_id,
            messages=[{"role": "user", "content": prompt}],
            temperature=params.temperature,
            max_tokens=params.max_tokens,
        )
        content = response.choices[0].message.content if response.choices else ""
        return content or ""

    async def aclose(self) -> None:
        await self._client.close()
