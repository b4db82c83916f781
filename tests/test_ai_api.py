import json
import os
import sys
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep API tests deterministic: no analytics writes, no rate limiting, no auth.
os.environ.setdefault("ANALYTICS_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("API_KEY", "")

from fastapi.testclient import TestClient

from app.ai.config import AIConfigStore
from app.ai.registry import ProviderRegistry
from app.ai.retry import RetryPolicy
from app.ai.types import Provider
from app.api.v1.ai import get_config_store, get_registry, get_retry_policy
from app.core.config import settings
from app.main import app

STORE = AIConfigStore.from_mapping(
    {
        "tasks": {
            "TEXT_IMPROVEMENT": {
                "provider": "anthropic",
                "model_id": "claude-3-5-haiku-20241022",
                "fallbacks": [{"provider": "openai", "model_id": "gpt-4o-mini"}],
            },
            "TRANSLATION": {"enabled": False},
        },
        "plans": {
            "FREE": {"multi_model_review": False},
            "PREMIUM": {"multi_model_review": True},
        },
        "multi_model_review": {
            "models": [
                {"provider": "openai", "model_id": "gpt-4o", "name": "GPT-4o"},
                {"provider": "google", "model_id": "gemini-1.5-pro", "name": "Gemini 1.5 Pro"},
            ],
            "synthesis": {"provider": "openai", "model_id": "gpt-4o"},
            "verification_enabled": False,
        },
    }
)

REVIEW = json.dumps(
    {
        "overallScore": 81,
        "strengths": ["Clear impact"],
        "suggestions": [{"type": "add_content", "title": "Add a GitHub link", "targetSemanticType": "contact"}],
        "missingSections": [],
    }
)


class FakeClient:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def generate(self, model_id, prompt, params):
        self.calls.append(model_id)
        outcome = self.responses.get(model_id)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            raise Exception(f"model {model_id} not found")
        return outcome


class AIApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def setUp(self):
        analytics_off = patch("app.analytics.db.settings", replace(settings, analytics_enabled=False))
        analytics_off.start()
        self.addCleanup(analytics_off.stop)
        self.registry = ProviderRegistry(credentials=lambda provider: None)
        app.dependency_overrides[get_registry] = lambda: self.registry
        app.dependency_overrides[get_config_store] = lambda: STORE
        app.dependency_overrides[get_retry_policy] = lambda: RetryPolicy(max_attempts=1)

    def tearDown(self):
        app.dependency_overrides.clear()

    def _use(self, responses, providers=tuple(Provider)):
        fake = FakeClient(responses)
        for provider in providers:
            self.registry.override(provider, fake)
        return fake

    def test_health(self):
        res = self.client.get("/v1/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["status"], "healthy")

    def test_generate_reports_fallback(self):
        fake = self._use(
            {"claude-3-5-haiku-20241022": Exception("Overloaded"), "gpt-4o-mini": "Led a team of 8 engineers"}
        )
        res = self.client.post("/v1/ai/generate", json={"task_type": "TEXT_IMPROVEMENT", "prompt": "Improve: led team"})
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["text"], "Led a team of 8 engineers")
        self.assertEqual(body["model_used"], "openai/gpt-4o-mini")
        self.assertEqual(body["fallbacks_attempted"], 1)
        self.assertEqual(fake.calls, ["claude-3-5-haiku-20241022", "gpt-4o-mini"])

    def test_generate_disabled_task(self):
        res = self.client.post("/v1/ai/generate", json={"task_type": "TRANSLATION", "prompt": "Translate"})
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.json()["error"], "task_disabled")

    def test_generate_wraps_unrecognized_provider_error(self):
        self._use({"claude-3-5-haiku-20241022": ValueError("unexpected content block")})
        res = self.client.post("/v1/ai/generate", json={"task_type": "TEXT_IMPROVEMENT", "prompt": "Improve"})
        self.assertEqual(res.status_code, 502)
        self.assertEqual(res.json()["error"], "provider_error")

    def test_generate_missing_credentials(self):
        res = self.client.post("/v1/ai/generate", json={"task_type": "TEXT_IMPROVEMENT", "prompt": "Improve"})
        self.assertEqual(res.status_code, 503)
        self.assertEqual(res.json()["error"], "missing_credentials")

    def test_review_multi_model(self):
        self._use({"gpt-4o": REVIEW, "gemini-1.5-pro": Exception("503 Service Unavailable")})
        res = self.client.post(
            "/v1/ai/review-multi-model",
            json={"resume_content": "Jane Doe\nEngineer", "plan_key": "PREMIUM"},
        )
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["model_count"], 1)
        self.assertEqual(body["overall_score"], 81)
        self.assertEqual(body["per_model_results"][0]["reference"], {"provider": "openai", "model_id": "gpt-4o"})
        self.assertEqual(body["failures"][0]["model_name"], "Gemini 1.5 Pro")

    def test_review_requires_plan_access(self):
        res = self.client.post(
            "/v1/ai/review-multi-model",
            json={"resume_content": "Jane Doe", "plan_key": "FREE"},
        )
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.json()["error"], "plan_access_denied")

    def test_review_all_models_failed(self):
        self._use({"gpt-4o": "no json", "gemini-1.5-pro": Exception("timeout")})
        res = self.client.post("/v1/ai/review-multi-model", json={"resume_content": "Jane Doe"})
        self.assertEqual(res.status_code, 502)
        self.assertEqual(res.json()["error"], "all_models_failed")

    def test_review_rejects_empty_resume(self):
        res = self.client.post("/v1/ai/review-multi-model", json={"resume_content": ""})
        self.assertEqual(res.status_code, 422)

    def test_review_models_listing(self):
        res = self.client.get("/v1/ai/multi-model-models")
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual([m["name"] for m in body["models"]], ["GPT-4o", "Gemini 1.5 Pro"])
        self.assertEqual(body["synthesis_model"], "openai/gpt-4o")

    def test_analytics_disabled_summary(self):
        res = self.client.get("/v1/analytics/ai-runs/summary")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"enabled": False})


if __name__ == "__main__":
    unittest.main()
