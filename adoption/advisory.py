"""Optional natural-language rationale from an OpenAI-compatible chat endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from adoption.errors import AdvisoryFailureError
from adoption.models import Tool, UserProfile

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You explain why an AI productivity tool suits a specific business user. "
    "Answer in one or two plain sentences, no lists, no marketing language."
)


def _extract_text(payload: dict[str, Any]) -> str | None:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str):
        return content.strip() or None
    return None


def build_prompt(tool: Tool, profile: UserProfile, reason: str) -> str:
    goals = ", ".join(profile.goals) or "Not specified"
    return (
        f"User role: {profile.role or 'Unknown'}\n"
        f"Industry: {profile.industry or 'Unknown'}\n"
        f"Company size: {profile.company_size or 'Unknown'}\n"
        f"AI experience: {profile.ai_experience.value}\n"
        f"Goals: {goals}\n"
        f"Time availability: {profile.time_availability or 'Unknown'}\n\n"
        f"Tool: {tool.name} ({tool.category}), pricing {tool.pricing_model.value}, "
        f"setup {tool.setup_difficulty.value}, value in {tool.time_to_value.value}, "
        f"rated {tool.user_rating:.1f}/5\n"
        f"Why it scored well: {reason}\n\n"
        "Explain why this tool is a good next step for this user."
    )


class AdvisoryClient:
    """Thin client for the advisory text-generation service.

    Every failure (transport error, timeout, HTTP error status, empty or
    malformed answer) is raised as
    :class:`~adoption.errors.AdvisoryFailureError`; callers fall back to the
    deterministic reason.

    Args:
        api_url: Chat-completions endpoint URL.
        api_key: Bearer token.
        model: Model identifier sent with each request.
        timeout_seconds: Per-request timeout.
        http_client: Optional pre-built :class:`httpx.Client` (tests inject
            one backed by :class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        timeout_seconds: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._model = model
        self._client = http_client or httpx.Client(timeout=timeout_seconds)

    def explain(self, tool: Tool, profile: UserProfile, reason: str) -> str:
        """Return a short rationale for recommending *tool* to *profile*.

        Raises:
            AdvisoryFailureError: If the service cannot produce an answer.
        """
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(tool, profile, reason)},
            ],
            "max_tokens": 200,
            "temperature": 0.3,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = self._client.post(self._api_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise AdvisoryFailureError(f"Advisory request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise AdvisoryFailureError(f"Advisory service returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise AdvisoryFailureError("Advisory service returned invalid JSON") from exc
        text = _extract_text(data) if isinstance(data, dict) else None
        if not text:
            raise AdvisoryFailureError("Advisory service returned no text")
        return text

    def close(self) -> None:
        self._client.close()
