"""
Classifier oracle adapter.

One call to the text-generation model per invocation: a system role string
and a user prompt in, raw text out. No retries here; each pipeline owns its
own retry policy because their idempotency needs differ.

``complete_json`` adds the response contract: the answer must be one JSON
object, optionally wrapped in a single ```json fence, and must validate
against a strict pydantic schema. Anything else raises OracleContractError.
"""
from __future__ import annotations

import json
import logging
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from app.core.errors import OracleContractError, OracleError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# The whole response must be the fence; fences inside prose are not unwrapped.
_FENCED_RE = re.compile(r"^\s*```(?:json)?[ \t]*\n?(.*?)\n?[ \t]*```\s*$", re.DOTALL | re.IGNORECASE)


def _unwrap_fence(text: str) -> str:
    m = _FENCED_RE.match(text)
    return m.group(1).strip() if m else text.strip()


def parse_oracle_json(text: str, schema: type[T]) -> T:
    """Decode an oracle answer and validate it against *schema*."""
    body = _unwrap_fence(text or "")
    if not body:
        raise OracleContractError("empty oracle response")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise OracleContractError(f"oracle response is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise OracleContractError(f"oracle response must be a JSON object, got {type(data).__name__}")
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise OracleContractError(
            f"oracle response violates {schema.__name__}: {exc.error_count()} error(s)"
        ) from exc


class OracleAdapter:
    def __init__(
        self,
        client,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout: float = 60.0,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except Exception as exc:
            # openai.APIError / APITimeoutError, google.genai errors, httpx errors
            raise OracleError(f"{exc.__class__.__name__}: {exc}") from exc

        try:
            message = response.choices[0].message
        except (AttributeError, IndexError) as exc:
            raise OracleError("oracle returned no choices") from exc

        refusal = getattr(message, "refusal", None)
        if refusal:
            raise OracleError(f"oracle refused: {refusal}")
        content = message.content or ""
        if not content.strip():
            raise OracleError("oracle returned empty content")
        return content

    def complete_json(self, system_prompt: str, user_prompt: str, schema: type[T]) -> T:
        return parse_oracle_json(self.complete(system_prompt, user_prompt), schema)
