"""AI completion service via LiteLLM Router.

Two model tiers are configured: ``reasoning`` (agenda synthesis) and
``fast``. Each tier has an Anthropic primary and an OpenAI fallback when
both keys are present. Router-level retries are disabled because every
call already goes through the Retry Gate.

Correspondence excerpts are third-party text, so user content is screened
for instruction-override phrases before it reaches the model.
"""

from __future__ import annotations

import re

import structlog
from litellm import Router

logger = structlog.get_logger(__name__)

# ── Prompt Screening ──────────────────────────────────────────────────────────

_INJECTION_PATTERNS: list[tuple[str, re.Pattern]] = [
    (
        "instruction_override",
        re.compile(
            r"ignore\s+(all\s+)?previous\s+instructions|"
            r"disregard\s+(all\s+)?(your\s+)?instructions",
            re.IGNORECASE,
        ),
    ),
    (
        "control_characters",
        re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]{3,}"),
    ),
]


def screen_user_content(text: str) -> str:
    """Replace instruction-override phrases in untrusted text."""
    cleaned = text
    for name, pattern in _INJECTION_PATTERNS:
        if pattern.search(cleaned):
            logger.warning("prompt_injection_sanitized", pattern=name)
            cleaned = pattern.sub("[removed]", cleaned)
    return cleaned


# ── LLM Service ──────────────────────────────────────────────────────────────


class LLMService:
    """Text completion over LiteLLM Router.

    Args:
        anthropic_api_key: Key for the primary provider (may be empty).
        openai_api_key: Key for the fallback provider (may be empty).
        timeout: Per-call timeout in seconds.
    """

    def __init__(
        self,
        anthropic_api_key: str = "",
        openai_api_key: str = "",
        timeout: int = 60,
    ) -> None:
        model_list = []

        if anthropic_api_key:
            model_list.append({
                "model_name": "reasoning",
                "litellm_params": {
                    "model": "anthropic/claude-sonnet-4-20250514",
                    "api_key": anthropic_api_key,
                },
            })
            model_list.append({
                "model_name": "fast",
                "litellm_params": {
                    "model": "anthropic/claude-3-5-haiku-20241022",
                    "api_key": anthropic_api_key,
                },
            })

        if openai_api_key:
            model_list.append({
                "model_name": "reasoning",
                "litellm_params": {
                    "model": "openai/gpt-4o",
                    "api_key": openai_api_key,
                },
            })
            model_list.append({
                "model_name": "fast",
                "litellm_params": {
                    "model": "openai/gpt-4o-mini",
                    "api_key": openai_api_key,
                },
            })

        if not model_list:
            logger.warning("No LLM API keys configured -- LLM service will be unavailable")
            self.router = None
            return

        self.router = Router(
            model_list=model_list,
            num_retries=0,
            timeout=timeout,
        )

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        tier: str = "reasoning",
        max_tokens: int = 1500,
    ) -> str:
        """Run a single text completion and return the text.

        Raises:
            RuntimeError: If no LLM API keys are configured.
        """
        if not self.router:
            raise RuntimeError("No LLM API keys configured")

        messages: list[dict] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": screen_user_content(prompt)})

        response = await self.router.acompletion(
            model=tier,
            messages=messages,
            max_tokens=max_tokens,
            temperature=0.3,
        )

        content = response.choices[0].message.content or ""
        logger.info(
            "llm.completion",
            tier=tier,
            model=getattr(response, "model", ""),
            chars=len(content),
        )
        return content
