import logging
import os
from functools import lru_cache
from types import SimpleNamespace
from supabase import create_client, Client
from openai import OpenAI
from app.core.config import get_settings

_prompt_logger = logging.getLogger("lernwelt.oracle_prompts")


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)


# ── Gemini behind the chat-completions interface ─────────────────────────────
# OracleAdapter only knows client.chat.completions.create(...); this shim
# answers that call from Gemini and shapes the reply like an OpenAI response.

def _chat_response(text: str, refusal=None):
    message = SimpleNamespace(content=text, refusal=refusal)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _GeminiCompletions:
    def __init__(self, api_key: str, model: str):
        from google import genai

        self._genai = genai.Client(api_key=api_key)
        self._model = model

    def create(self, model=None, messages=None, temperature=0.2, max_tokens=None, timeout=None, **kwargs):
        from google.genai import types

        messages = messages or []
        system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system") or None
        prompt = "\n\n".join(m["content"] for m in messages if m.get("role") != "system")

        if os.environ.get("DEBUG_LLM_PROMPTS", "").lower() in ("1", "true"):
            _prompt_logger.warning(
                "[gemini] model=%s temp=%s max_tokens=%s\n-- SYSTEM --\n%s\n-- USER --\n%s",
                self._model, temperature, max_tokens, system or "(none)", prompt,
            )

        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=temperature,
            max_output_tokens=max_tokens or 2048,
            response_mime_type="application/json",
            # no thinking tokens: the oracle contract is a bare JSON body
            thinking_config=types.ThinkingConfig(thinking_budget=0),
            http_options=types.HttpOptions(timeout=int(timeout * 1000)) if timeout else None,
        )
        response = self._genai.models.generate_content(model=self._model, contents=prompt, config=config)

        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None)
        if block_reason:
            return _chat_response("", refusal=f"blocked by Gemini: {block_reason}")
        return _chat_response(response.text or "")


class GeminiClientAdapter:
    def __init__(self, api_key: str, model: str = "gemini-2.5-flash"):
        self.chat = SimpleNamespace(completions=_GeminiCompletions(api_key, model))


def get_llm_client(settings=None):
    """Return the active LLM client based on llm_provider setting."""
    if settings is None:
        settings = get_settings()
    if settings.llm_provider == "openai":
        return OpenAI(api_key=settings.openai_api_key)
    return GeminiClientAdapter(api_key=settings.gemini_api_key, model=settings.gemini_model)


# ── Pipeline handles (constructed once per process, injected via Depends) ────

@lru_cache
def get_store():
    from app.services.store import SQLStore

    settings = get_settings()
    store = SQLStore(settings.database_path, timeout=settings.store_timeout_seconds)
    if settings.store_create_schema:
        store.ensure_schema()
    return store


@lru_cache
def get_oracle():
    from app.services.oracle import OracleAdapter

    settings = get_settings()
    return OracleAdapter(
        get_llm_client(settings),
        model=settings.oracle_model,
        temperature=settings.oracle_temperature,
        max_tokens=settings.oracle_max_tokens,
        timeout=settings.oracle_timeout_seconds,
    )


def get_config():
    from app.services.curriculum_config import get_curriculum_config

    return get_curriculum_config()
