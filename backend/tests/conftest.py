import json
import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.services.curriculum_config import CurriculumConfig  # noqa: E402
from app.services.oracle import OracleAdapter  # noqa: E402
from app.services.store import SQLStore  # noqa: E402


# ---------------------------------------------------------------------------
# Fake OpenAI-compatible client
# ---------------------------------------------------------------------------

class _Message:
    def __init__(self, content, refusal=None):
        self.content = content
        self.refusal = refusal


class _Choice:
    def __init__(self, content, refusal=None):
        self.message = _Message(content, refusal)


class _Response:
    def __init__(self, content, refusal=None):
        self.choices = [_Choice(content, refusal)]


class FakeLLMClient:
    """
    Scripted stand-in for client.chat.completions.create.

    `responses` is either a list consumed in call order (str -> content,
    Exception -> raised) or a callable(system, user) returning the same.
    """

    def __init__(self, responses):
        self._responses = responses
        self._lock = threading.Lock()
        self.calls: list[dict] = []
        self.chat = self
        self.completions = self

    def create(self, model=None, messages=None, temperature=None, max_tokens=None, timeout=None, **kwargs):
        system = next(m["content"] for m in messages if m["role"] == "system")
        user = next(m["content"] for m in messages if m["role"] == "user")
        with self._lock:
            self.calls.append({"system": system, "user": user, "timeout": timeout, "model": model})
            if callable(self._responses):
                answer = self._responses(system, user)
            else:
                answer = self._responses.pop(0)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, (dict, list)):
            answer = json.dumps(answer)
        return _Response(answer)


def make_oracle(responses, **kwargs) -> tuple[OracleAdapter, FakeLLMClient]:
    client = FakeLLMClient(responses)
    return OracleAdapter(client, model="test-model", timeout=5.0, **kwargs), client


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store(tmp_path):
    s = SQLStore(str(tmp_path / "test.db"))
    s.ensure_schema()
    yield s
    s.close()


@pytest.fixture
def config() -> CurriculumConfig:
    return CurriculumConfig(
        leaf_level="kompetenzstufe",
        taxonomy_prefixes={
            "MA.1.A": ["kopfrechnen", "textaufgaben"],
            "MA.1.C": ["textaufgaben"],
            "D.5.E": ["dasdass"],
        },
        capability_specs={
            "kopfrechnen": "Mental arithmetic: + - * / with integers. No geometry.",
            "textaufgaben": "Word problems with a numerical answer.",
        },
        audit_excluded_apps=["kopfrechnen", "zeitrechnen"],
    )


def add_node(store, node_id, code, title="Title", description=None, level="kompetenzstufe"):
    store.execute(
        "INSERT INTO curriculum_nodes (id, code, title, description, level) VALUES (?, ?, ?, ?, ?)",
        [node_id, code, title, description, level],
    )


def add_content(store, content_id, app_id, data, ai_generated=1, human_verified=0,
                ai_reviewed_counter=0, flag_counter=0):
    store.execute(
        "INSERT INTO app_content (id, app_id, data, ai_generated, human_verified, "
        "ai_reviewed_counter, flag_counter) VALUES (?, ?, ?, ?, ?, ?, ?)",
        [content_id, app_id, data if isinstance(data, str) else json.dumps(data),
         ai_generated, human_verified, ai_reviewed_counter, flag_counter],
    )


def add_link(store, content_id, node_id):
    store.execute(
        "INSERT INTO app_content_curriculum (app_content_id, curriculum_node_id) VALUES (?, ?)",
        [content_id, node_id],
    )


def links(store) -> set[tuple[int, int]]:
    rows = store.query("SELECT app_content_id, curriculum_node_id FROM app_content_curriculum")
    return {(r["app_content_id"], r["curriculum_node_id"]) for r in rows}
