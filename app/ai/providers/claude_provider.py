from __future__ import annotations

from anthropic import AsyncAnthropic

from app.ai.types import GenerationParams


class ClaudeProvider:
    def __init__(self, api_key: str, timeout_s: float = 60.0, max_retries: int = 0):
        key = (api_key or "").strip()
        if not key:
            raise RuntimeError("ANTHROPIC_API_KEY is missing")

        self._client = AsyncAnthropic(api_key=key, timeout=timeout_s, max_retries=max_retries)

    async def generate(self, model_id: str, prompt: str, params: GenerationParams) -> str:
        response = await self._client.messages.create(
            model=model_id,
            max_tokens=params.max_tokens,
            temperature=params.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        parts = [getattr(block, "text", "") for block in response.content or []]
        return "".join(part for part in parts if part)

    async def aclose(self) -> None:
        await self._client.close()
