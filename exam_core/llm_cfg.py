# exam_core/llm_cfg.py
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Any, Mapping, Union
from openai import AzureOpenAI, OpenAI

from .config import GRADING_MODEL

# keys each grading backend needs, looked up in load_config() output, then the environment
_REQUIRED: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "azure":  ("AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_KEY",
               "AZURE_OPENAI_API_VERSION", "AZURE_OPENAI_DEPLOYMENT"),
}

@dataclass(frozen=True)
class GraderSettings:
    backend: str
    api_key: str
    model: str          # deployment name on Azure
    endpoint: str = ""
    api_version: str = ""

def grader_settings(backend: str, cfg: Mapping[str, Any] | None = None) -> GraderSettings:
    if backend not in _REQUIRED:
        raise ValueError(f"no grading backend named {backend!r}")
    cfg = cfg or {}
    def pick(key: str) -> str:
        return str(cfg.get(key) or os.getenv(key, "") or "")
    missing = [k for k in _REQUIRED[backend] if not pick(k)]
    if missing:
        raise RuntimeError(f"{backend} grading backend not configured. Missing: {', '.join(missing)}")
    if backend == "azure":
        return GraderSettings(
            backend="azure",
            api_key=pick("AZURE_OPENAI_API_KEY"),
            model=pick("AZURE_OPENAI_DEPLOYMENT"),
            endpoint=pick("AZURE_OPENAI_ENDPOINT"),
            api_version=pick("AZURE_OPENAI_API_VERSION"),
        )
    return GraderSettings(backend="openai", api_key=pick("OPENAI_API_KEY"),
                          model=pick("OPENAI_MODEL") or GRADING_MODEL)

def client(settings: GraderSettings) -> Union[OpenAI, AzureOpenAI]:
    if settings.backend == "azure":
        return AzureOpenAI(
            azure_endpoint=settings.endpoint,
            api_key=settings.api_key,
            api_version=settings.api_version,
        )
    return OpenAI(api_key=settings.api_key)
