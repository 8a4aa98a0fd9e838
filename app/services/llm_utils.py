"""
LLM Utilities
=============

Thin async wrapper around the Anthropic client used by the free analysis
and the premium generators.

CONTENTS
--------
- LLMClient: constructed once per process, held on app.state
- LLMResponse: standardized response with token counts
- Cost tracking

USAGE
-----
    from app.services.llm_utils import LLMClient

    llm = LLMClient(api_key=settings.anthropic_api_key, model=settings.anthropic_model)
    response = await llm.complete(system=SYSTEM_PROMPT, prompt=user_prompt)
    data = parse_llm_json(response.text)
"""

from dataclasses import dataclass
from typing import Optional

import anthropic


class LLMUnavailableError(RuntimeError):
    """Raised when no LLM provider is configured."""


@dataclass
class LLMResponse:
    """Standardized LLM response."""
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    provider: Optional[str] = None
    model: Optional[str] = None


class LLMClient:
    """
    Async Anthropic client.

    PARAMETERS
    ----------
    api_key : str
        Anthropic API key. An empty key leaves the client unconfigured and
        every call raises LLMUnavailableError.
    model : str
        Model used for every call.
    """

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514"):
        self.model = model
        self._client: Optional[anthropic.AsyncAnthropic] = (
            anthropic.AsyncAnthropic(api_key=api_key) if api_key else None
        )

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        system: str,
        prompt: str,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """
        Send one system + user message and return the text reply.

        STEPS
        -----
        1. Call client.messages.create()
        2. Join the text blocks of the reply
        3. Return standardized LLMResponse

        RAISES
        ------
        LLMUnavailableError
            No API key configured
        anthropic.APIError
            Upstream failure (propagated to the caller)
        """
        if self._client is None:
            raise LLMUnavailableError("ANTHROPIC_API_KEY is not configured")

        response = await self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()

        return LLMResponse(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            provider="anthropic",
            model=self.model,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


# Cost per 1M tokens (in USD)
COST_PER_MILLION = {
    "claude-sonnet-4-20250514": {"input": 3.00, "output": 15.00},
    "claude-opus-4-1-20250805": {"input": 15.00, "output": 75.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
}


def calculate_cost(response: LLMResponse) -> float:
    """
    Calculate cost of an LLM call in USD.

    Unknown models cost 0.
    """
    model = response.model or ""
    costs = COST_PER_MILLION.get(model, {"input": 0, "output": 0})

    input_cost = (response.input_tokens / 1_000_000) * costs["input"]
    output_cost = (response.output_tokens / 1_000_000) * costs["output"]

    return input_cost + output_cost
