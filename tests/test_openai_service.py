# test_openai_service.py
from types import SimpleNamespace

import pytest

from core import config
from core.assistant import PLAN_MARKER
from core.errors import AssistantConfigError, AssistantError
from services import openai_service
from services.openai_service import ClinicalAssistant, build_system_prompt


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


class FakeOpenAI:
    replies = []

    def __init__(self, api_key):
        self.api_key = api_key
        self.chat = SimpleNamespace(completions=FakeCompletions(FakeOpenAI.replies))


@pytest.fixture
def sleeps(monkeypatch):
    waits = []
    monkeypatch.setattr(openai_service.time, "sleep", waits.append)
    monkeypatch.setattr(openai_service, "OpenAI", FakeOpenAI)
    return waits


def make_assistant(replies, **kwargs):
    FakeOpenAI.replies = replies
    return ClinicalAssistant(api_key="sk-test", **kwargs)


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)
    with pytest.raises(AssistantConfigError):
        ClinicalAssistant()
    with pytest.raises(AssistantConfigError):
        ClinicalAssistant(api_key="your-openai-api-key-here")


def test_ask_sends_context_and_returns_reply(sleeps):
    assistant = make_assistant(["Transfuse 15 ml/kg."], model="gpt-test")
    reply = assistant.ask("  Should I transfuse?  ", "PATIENT: Baby Martinez")

    assert reply == "Transfuse 15 ml/kg."
    call = assistant.client.chat.completions.calls[0]
    assert call["model"] == "gpt-test"
    system, user = call["messages"]
    assert "PATIENT: Baby Martinez" in system["content"]
    assert PLAN_MARKER in system["content"]
    assert user == {"role": "user", "content": "Should I transfuse?"}
    assert sleeps == []


def test_empty_reply(sleeps):
    assistant = make_assistant([None])
    assert assistant.ask("Hello", "") == openai_service.NO_RESPONSE_TEXT


def test_rejects_empty_message_and_unknown_language(sleeps):
    assistant = make_assistant([])
    with pytest.raises(ValueError):
        assistant.ask("   ", "")
    with pytest.raises(ValueError):
        assistant.ask("Hola", "", language="fr")
    assert assistant.client.chat.completions.calls == []


def test_retries_with_backoff(sleeps):
    assistant = make_assistant([RuntimeError("timeout"), RuntimeError("timeout"), "OK"], max_retries=3)
    assert assistant.ask("Hello", "") == "OK"
    assert sleeps == [2, 4]


def test_gives_up_after_max_retries(sleeps):
    assistant = make_assistant([RuntimeError("down")] * 3, max_retries=2)
    with pytest.raises(AssistantError, match="after 3 attempts"):
        assistant.ask("Hello", "")
    assert len(assistant.client.chat.completions.calls) == 3
    assert sleeps == [2, 4]


def test_spanish_prompt():
    prompt = build_system_prompt("es", "PACIENTE")
    assert "Respond in Spanish" in prompt
    assert f"Excelente. He creado el plan de tratamiento. {PLAN_MARKER}" in prompt
