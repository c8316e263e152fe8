"""Static model catalog served on /models and /v1/models."""

from __future__ import annotations

from copilot_override.core.models import ModelCapabilities, ModelDescriptor


def _chat(model_id: str, name: str, family: str, version: str) -> ModelDescriptor:
    return ModelDescriptor(
        capabilities=ModelCapabilities(family=family, type="chat"),
        id=model_id,
        name=name,
        version=version,
    )


def _embeddings(model_id: str, name: str, family: str) -> ModelDescriptor:
    return ModelDescriptor(
        capabilities=ModelCapabilities(family=family, type="embeddings"),
        id=model_id,
        name=name,
        version=family,
    )


MODEL_CATALOG: tuple[ModelDescriptor, ...] = (
    _chat("gpt-3.5-turbo", "GPT 3.5 Turbo", "gpt-3.5-turbo", "gpt-3.5-turbo-0613"),
    _chat("gpt-3.5-turbo-0613", "GPT 3.5 Turbo (2023-06-13)", "gpt-3.5-turbo", "gpt-3.5-turbo-0613"),
    _chat("gpt-4", "GPT 4", "gpt-4", "gpt-4-0613"),
    _chat("gpt-4-0613", "GPT 4 (2023-06-13)", "gpt-4", "gpt-4-0613"),
    _chat("gpt-4-0125-preview", "GPT 4 Turbo (2024-01-25 Preview)", "gpt-4-turbo", "gpt-4-0125-preview"),
    _embeddings("text-embedding-ada-002", "Embedding V2 Ada", "text-embedding-ada-002"),
    _embeddings("text-embedding-ada-002-index", "Embedding V2 Ada (Index)", "text-embedding-ada-002"),
    _embeddings("text-embedding-3-small", "Embedding V3 small", "text-embedding-3-small"),
    _embeddings("text-embedding-3-small-inference", "Embedding V3 small (Inference)", "text-embedding-3-small"),
)


def catalog_payload() -> dict:
    return {
        "data": [model.model_dump() for model in MODEL_CATALOG],
        "object": "list",
    }
