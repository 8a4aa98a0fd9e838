"""FastAPI dependencies that hand out the process-wide resources on app.state."""

from fastapi import Request

from app.core.config import Settings
from app.core.locks import GenerationLocks
from app.core.posthog import Analytics
from app.services.llm_utils import LLMClient


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_llm(request: Request) -> LLMClient:
    return request.app.state.llm


def get_generation_locks(request: Request) -> GenerationLocks:
    return request.app.state.generation_locks


def get_analytics(request: Request) -> Analytics:
    return request.app.state.analytics
