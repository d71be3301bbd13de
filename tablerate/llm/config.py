from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

_SUMMARY_SYSTEM_PROMPT = (
    "Act as a concise summarization engine. "
    "Always return a single, clear sentence."
)


@dataclass(frozen=True)
class LLMConfig:
    """Settings for the one-sentence review summary."""

    api_key: str = os.getenv("GROQ_API_KEY", "")
    model: str = os.getenv("SUMMARY_MODEL", "llama-3.3-70b-versatile")
    timeout: float = float(os.getenv("SUMMARY_TIMEOUT", "10"))
    # A single sentence needs few tokens
    max_tokens: int = 256
    temperature: float = 0.3
    system_prompt: str = _SUMMARY_SYSTEM_PROMPT
    enabled: bool = os.getenv("SUMMARY_ENABLED", "true").lower() != "false"


DEFAULT_LLM_CONFIG = LLMConfig()
