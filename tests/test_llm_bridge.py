from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from openai import AzureOpenAI, OpenAI

from exam_core import llm_cfg
from exam_core.config import GRADING_MODEL, GRADING_TIMEOUT_S
from exam_core.errors import GradingFailure
from exam_core.heuristics import heuristic_open_grade
from exam_core.llm_bridge import HeuristicGrader, OpenAIGrader, grader_from_config, parse_grade


class _FakeCompletions:
    def __init__(self, content=None, exc=None):
        self.content = content
        self.exc = exc
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.exc is not None:
            raise self.exc
        msg = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=msg)])


def _client(**kw):
    completions = _FakeCompletions(**kw)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_openai_grader_parses_json_and_logs(tmp_path):
    client, completions = _client(content=json.dumps({"score": 82, "feedback": "Solid"}))
    log_path = tmp_path / "grading.jsonl"
    grader = OpenAIGrader(client, "gpt-4o", log_path=str(log_path))

    grade = grader.grade("What is a mutex?", "A lock.", {"job_role": "Systems Engineer"})

    assert grade.score == 82.0 and grade.feedback == "Solid"
    system = completions.kwargs["messages"][0]["content"]
    assert "Systems Engineer positions" in system
    assert completions.kwargs["response_format"] == {"type": "json_object"}
    assert "Answer: A lock." in completions.kwargs["messages"][1]["content"]

    record = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert record["model"] == "gpt-4o" and record["error"] is None


def test_openai_grader_wraps_transport_errors(tmp_path):
    client, _ = _client(exc=ConnectionError("reset by peer"))
    grader = OpenAIGrader(client, "gpt-4o", log_path=str(tmp_path / "g.jsonl"))
    with pytest.raises(GradingFailure, match="reset by peer"):
        grader.grade("q", "a", {})
    record = json.loads((tmp_path / "g.jsonl").read_text(encoding="utf-8").strip())
    assert "reset by peer" in record["error"]


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"score": "high"}', '{"score": NaN}', ""])
def test_parse_grade_rejects_garbage(raw):
    with pytest.raises(GradingFailure):
        parse_grade(raw)


def test_parse_grade_defaults_feedback():
    g = parse_grade('{"score": "55"}')
    assert g.score == 55.0 and g.feedback == "No feedback provided"


def test_grader_from_config_without_backend():
    assert isinstance(grader_from_config({}), HeuristicGrader)
    assert isinstance(grader_from_config({"LLM_BACKEND": "mystery"}), HeuristicGrader)


def test_openai_backend_requires_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(RuntimeError):
        grader_from_config({"LLM_BACKEND": "openai"})



def test_openai_grader_bounds_each_request():
    client, completions = _client(content=json.dumps({"score": 40}))
    OpenAIGrader(client, "gpt-4o", log_path=None).grade("q", "a", {})
    assert completions.kwargs["timeout"] == GRADING_TIMEOUT_S

    client, completions = _client(content=json.dumps({"score": 40}))
    OpenAIGrader(client, "gpt-4o", log_path=None, request_timeout=2.5).grade("q", "a", {})
    assert completions.kwargs["timeout"] == 2.5


_AZURE_KEYS = ("AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_API_VERSION", "AZURE_OPENAI_DEPLOYMENT")


def test_azure_settings_name_missing_keys(monkeypatch):
    for key in _AZURE_KEYS:
        monkeypatch.delenv(key, raising=False)
    with pytest.raises(RuntimeError, match="AZURE_OPENAI_DEPLOYMENT"):
        llm_cfg.grader_settings("azure", {"AZURE_OPENAI_API_KEY": "k"})


def test_azure_settings_use_deployment_as_model(monkeypatch):
    for key in _AZURE_KEYS:
        monkeypatch.delenv(key, raising=False)
    settings = llm_cfg.grader_settings("azure", {
        "AZURE_OPENAI_ENDPOINT": "https://example.openai.azure.com",
        "AZURE_OPENAI_API_KEY": "k",
        "AZURE_OPENAI_API_VERSION": "2024-06-01",
        "AZURE_OPENAI_DEPLOYMENT": "grader-4o",
    })
    assert settings.model == "grader-4o"
    assert settings.endpoint == "https://example.openai.azure.com"
    assert isinstance(llm_cfg.client(settings), AzureOpenAI)


def test_openai_settings_fall_back_to_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("OPENAI_MODEL", raising=False)
    settings = llm_cfg.grader_settings("openai", {})
    assert settings.api_key == "sk-test" and settings.model == GRADING_MODEL
    assert isinstance(llm_cfg.client(settings), OpenAI)

    grader = grader_from_config({"LLM_BACKEND": "openai", "GRADING_LOG_ENABLED": False})
    assert isinstance(grader, OpenAIGrader) and grader.log_path is None


def test_unknown_backend_settings_are_rejected():
    with pytest.raises(ValueError):
        llm_cfg.grader_settings("anthropic")


def test_heuristic_grade_bounds():
    assert heuristic_open_grade("") == 0
    assert heuristic_open_grade("I don't know, pass") == 5
    rich = ("First we measured p95 latency; for example the checkout API was slow because of "
            "an N+1 query, therefore we added an index and cut latency by 40 percent.")
    s = heuristic_open_grade(rich, "How would you fix a slow API?", "Backend Engineer")
    assert 60 <= s <= 100
    assert HeuristicGrader().grade("q", "", {}).score == 0.0
