import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.ai.errors import MissingCredentialsError
from app.ai.registry import ProviderRegistry
from app.ai.types import GenerationParams, ModelReference, Provider


class RecordingClient:
    def __init__(self, api_key):
        self.api_key = api_key
        self.closed = False

    async def generate(self, model_id, prompt, params):
        return f"{model_id}:{prompt}:{params.max_tokens}"

    async def aclose(self):
        self.closed = True


class ProviderRegistryTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.created = []

        def factory(api_key):
            client = RecordingClient(api_key)
            self.created.append(client)
            return client

        self.registry = ProviderRegistry(
            credentials=lambda provider: "key-openai" if provider is Provider.OPENAI else None,
            factories={Provider.OPENAI: factory, Provider.ANTHROPIC: factory},
        )

    def test_client_is_created_once_and_reused(self):
        first = self.registry.client(Provider.OPENAI)
        second = self.registry.client(Provider.OPENAI)
        self.assertIs(first, second)
        self.assertEqual(len(self.created), 1)
        self.assertEqual(first.api_key, "key-openai")

    def test_missing_credentials_raise_when_first_needed(self):
        with self.assertRaises(MissingCredentialsError) as ctx:
            self.registry.client(Provider.ANTHROPIC)
        self.assertEqual(ctx.exception.provider, Provider.ANTHROPIC)
        self.assertEqual(self.created, [])

    def test_override_and_reset(self):
        fake = RecordingClient("fake")
        self.registry.override(Provider.ANTHROPIC, fake)
        self.assertIs(self.registry.client(Provider.ANTHROPIC), fake)
        self.registry.reset()
        with self.assertRaises(MissingCredentialsError):
            self.registry.client(Provider.ANTHROPIC)

    async def test_model_handle_binds_model_id(self):
        handle = self.registry.model(ModelReference(Provider.OPENAI, "gpt-4o"))
        text = await handle.generate("hi", GenerationParams(temperature=0.1, max_tokens=42))
        self.assertEqual(text, "gpt-4o:hi:42")

    async def test_aclose_closes_and_forgets_clients(self):
        client = self.registry.client(Provider.OPENAI)
        await self.registry.aclose()
        self.assertTrue(client.closed)
        self.assertIsNot(self.registry.client(Provider.OPENAI), client)


if __name__ == "__main__":
    unittest.main()
