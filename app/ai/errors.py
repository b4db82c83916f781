from __future__ import annotations

from app.ai.types import Provider


class AIEngineError(RuntimeError):
    code = "ai_engine_error"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code


class TaskDisabledError(AIEngineError):
    code = "task_disabled"
    status_code = 403

    def __init__(self, task_type: str):
        super().__init__(f"AI task {task_type} is disabled")
        self.task_type = task_type


class PlanAccessError(AIEngineError):
    code = "plan_access_denied"
    status_code = 403


class MissingCredentialsError(AIEngineError):
    code = "missing_credentials"
    status_code = 503

    def __init__(self, provider: Provider):
        super().__init__(f"No API key configured for {provider.value}")
        self.provider = provider


class AllModelsFailedError(AIEngineError):
    code = "all_models_failed"
    status_code = 502

    def __init__(self, failures: list | None = None):
        super().__init__("All models failed to generate reviews")
        self.failures = list(failures or [])


class ConfigurationError(AIEngineError):
    code = "configuration_error"
    status_code = 400


class ProviderCallError(AIEngineError):
    code = "provider_error"
    status_code = 502
