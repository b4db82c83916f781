import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.ai.config import AIConfigStore
from app.ai.errors import MissingCredentialsError
from app.ai.fallback import execute_with_fallback, generate_text_for_task
from app.ai.registry import ProviderRegistry
from app.ai.retry import RetryPolicy
from app.ai.types import ModelReference, Provider, TaskConfig, TaskType

NO_WAIT = RetryPolicy(max_attempts=2, initial_delay_ms=0, max_delay_ms=0, jitter_ms=0)


class ScriptedClient:
    """Returns or raises scripted outcomes per model id, recording every call."""

    def __init__(self, script, calls):
        self.script = {key: list(value) for key, value in script.items()}
        self.calls = calls

    async def generate(self, model_id, prompt, params):
        self.calls.append(model_id)
        outcome = self.script[model_id].pop(0) if len(self.script[model_id]) > 1 else self.script[model_id][0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _registry(script, calls, providers=(Provider.OPENAI, Provider.ANTHROPIC, Provider.GOOGLE)):
    registry = ProviderRegistry(credentials=lambda provider: None)
    client = ScriptedClient(script, calls)
    for provider in providers:
        registry.override(provider, client)
    return registry


CHAIN = TaskConfig(
    task_type=TaskType.RESUME_REVIEW,
    primary=ModelReference(Provider.ANTHROPIC, "model-1"),
    fallbacks=(ModelReference(Provider.OPENAI, "model-2"), ModelReference(Provider.GOOGLE, "model-3")),
    temperature=0.2,
    max_tokens=500,
)


async def _echo(handle, params):
    return await handle.generate("prompt", params)


class FallbackEngineTests(unittest.IsolatedAsyncioTestCase):
    async def test_first_candidate_success(self):
        calls = []
        registry = _registry({"model-1": ["first"]}, calls)
        result = await execute_with_fallback(CHAIN, _echo, registry=registry, retry_policy=NO_WAIT)
        self.assertEqual(result.value, "first")
        self.assertEqual(result.model_used, CHAIN.primary)
        self.assertEqual(result.fallbacks_attempted, 0)
        self.assertEqual(calls, ["model-1"])

    async def test_falls_through_in_configured_order(self):
        calls = []
        registry = _registry(
            {
                "model-1": [Exception("Invalid API key")],
                "model-2": [Exception("The model does not exist")],
                "model-3": ["third"],
            },
            calls,
        )
        result = await execute_with_fallback(CHAIN, _echo, registry=registry, retry_policy=NO_WAIT)
        self.assertEqual(result.value, "third")
        self.assertEqual(result.fallbacks_attempted, 2)
        self.assertEqual(result.model_used, ModelReference(Provider.GOOGLE, "model-3"))
        self.assertEqual(calls, ["model-1", "model-2", "model-3"])

    async def test_transient_error_is_retried_before_falling_back(self):
        calls = []
        registry = _registry(
            {"model-1": [Exception("503 Service Unavailable")], "model-2": ["second"]},
            calls,
        )
        result = await execute_with_fallback(CHAIN, _echo, registry=registry, retry_policy=NO_WAIT)
        self.assertEqual(result.value, "second")
        self.assertEqual(result.fallbacks_attempted, 1)
        self.assertEqual(calls, ["model-1", "model-1", "model-2"])

    async def test_non_fallback_worthy_error_short_circuits(self):
        calls = []
        error = ValueError("prompt template is broken")
        registry = _registry({"model-1": [error], "model-2": ["unused"]}, calls)
        with self.assertRaises(ValueError) as ctx:
            await execute_with_fallback(CHAIN, _echo, registry=registry, retry_policy=NO_WAIT)
        self.assertIs(ctx.exception, error)
        self.assertEqual(calls, ["model-1"])

    async def test_last_candidate_error_surfaces(self):
        calls = []
        last = Exception("model-3 unauthorized")
        registry = _registry(
            {
                "model-1": [Exception("unauthorized")],
                "model-2": [Exception("unauthorized")],
                "model-3": [last],
            },
            calls,
        )
        with self.assertRaises(Exception) as ctx:
            await execute_with_fallback(CHAIN, _echo, registry=registry, retry_policy=NO_WAIT)
        self.assertIs(ctx.exception, last)

    async def test_missing_credentials_moves_to_next_provider(self):
        calls = []
        registry = _registry({"model-2": ["second"]}, calls, providers=(Provider.OPENAI,))
        result = await execute_with_fallback(CHAIN, _echo, registry=registry, retry_policy=NO_WAIT)
        self.assertEqual(result.value, "second")
        self.assertEqual(result.fallbacks_attempted, 1)

    async def test_missing_credentials_on_last_candidate_raises_typed_error(self):
        registry = ProviderRegistry(credentials=lambda provider: None)
        single = TaskConfig(task_type=TaskType.TRANSLATION, primary=ModelReference(Provider.GOOGLE, "g"))
        with self.assertRaises(MissingCredentialsError):
            await execute_with_fallback(single, _echo, registry=registry, retry_policy=NO_WAIT)

    async def test_generate_text_for_task_resolves_plan(self):
        calls = []
        store = AIConfigStore.from_mapping(
            {
                "tasks": {"TEXT_IMPROVEMENT": {"provider": "anthropic", "model_id": "claude-3-5-haiku-20241022"}},
                "plans": {"PRO": {"task_model_overrides": {"TEXT_IMPROVEMENT": {"provider": "openai", "model_id": "gpt-4o-mini"}}}},
            }
        )
        registry = _registry({"gpt-4o-mini": ["improved"]}, calls)
        result = await generate_text_for_task(
            TaskType.TEXT_IMPROVEMENT,
            "Improve this",
            plan_key="PRO",
            store=store,
            registry=registry,
            retry_policy=NO_WAIT,
        )
        self.assertEqual(result.value, "improved")
        self.assertEqual(str(result.model_used), "openai/gpt-4o-mini")
        self.assertEqual(calls, ["gpt-4o-mini"])


if __name__ == "__main__":
    unittest.main()
