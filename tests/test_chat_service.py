import os
import sys
from types import SimpleNamespace

import httpx
import openai
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    ChatMessageRepository,
    MaxLiftRepository,
    MyExerciseRepository,
    SettingsRepository,
    TemplateExerciseRepository,
    TemplateSetRepository,
    TemplateWorkoutRepository,
    WorkoutExerciseRepository,
    WorkoutRepository,
    WorkoutSetRepository,
)
from chat_service import ChatError, ChatService, SYSTEM_PROMPT, estimate_tokens
from workout_service import ExerciseSet, Workout, WorkoutExercise, WorkoutService


class FakeCompletions:
    def __init__(self, reply="Try squats.", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))]
        )


class FakeClient:
    def __init__(self, **kwargs):
        self.chat = SimpleNamespace(completions=FakeCompletions(**kwargs))


def make_service(db_path):
    return WorkoutService(
        WorkoutRepository(db_path),
        WorkoutExerciseRepository(db_path),
        WorkoutSetRepository(db_path),
        MaxLiftRepository(db_path),
        TemplateWorkoutRepository(db_path),
        TemplateExerciseRepository(db_path),
        TemplateSetRepository(db_path),
    )


def _request():
    return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


@pytest.fixture
def build(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ENCRYPT_SETTINGS", raising=False)
    db_path = str(tmp_path / "chat.db")

    def _build(client=None):
        return ChatService(
            ChatMessageRepository(db_path),
            make_service(db_path),
            MyExerciseRepository(db_path),
            SettingsRepository(db_path, str(tmp_path / "settings.yaml")),
            client=client,
        )

    return _build


def test_build_messages_keeps_last_four(build):
    service = build(FakeClient())
    conversation = [{"role": "user", "content": f"m{i}"} for i in range(6)]
    messages = service.build_messages(conversation, {"role": "system", "content": "ctx"})
    assert messages[0]["content"] == SYSTEM_PROMPT
    assert messages[1]["content"] == "ctx"
    assert [m["content"] for m in messages[2:]] == ["m2", "m3", "m4", "m5"]


def test_build_messages_reduces_long_conversation(build):
    service = build(FakeClient())
    conversation = [{"role": "user", "content": "x" * 20000} for _ in range(4)]
    messages = service.build_messages(conversation)
    assert len(messages) == 3
    assert estimate_tokens([{"content": "abcde"}]) == 2


def test_send_uses_settings(build):
    client = FakeClient(reply="Do 5x5.")
    service = build(client)
    reply = service.send("u1", [{"role": "user", "content": "Plan?"}])
    assert reply == "Do 5x5."
    call = client.chat.completions.calls[0]
    assert call["model"] == "gpt-3.5-turbo"
    assert call["max_tokens"] == 800
    assert call["temperature"] == pytest.approx(0.7)
    assert call["messages"][-1] == {"role": "user", "content": "Plan?"}


def test_empty_reply_raises(build):
    service = build(FakeClient(reply=""))
    with pytest.raises(ChatError, match="No response"):
        service.send("u1", [{"role": "user", "content": "hi"}])


def test_missing_key(build):
    service = build()
    with pytest.raises(ChatError, match="API key"):
        service.send("u1", [{"role": "user", "content": "hi"}])


def test_error_mapping(build):
    network = build(FakeClient(error=openai.APIConnectionError(request=_request())))
    with pytest.raises(ChatError, match="Network error"):
        network.send("u1", [{"role": "user", "content": "hi"}])
    quota_error = openai.RateLimitError(
        "You exceeded your current quota",
        response=httpx.Response(429, request=_request()),
        body=None,
    )
    quota = build(FakeClient(error=quota_error))
    with pytest.raises(ChatError, match="quota exceeded"):
        quota.send("u1", [{"role": "user", "content": "hi"}])
    auth_error = openai.AuthenticationError(
        "bad key", response=httpx.Response(401, request=_request()), body=None
    )
    auth = build(FakeClient(error=auth_error))
    with pytest.raises(ChatError, match="invalid or missing"):
        auth.send("u1", [{"role": "user", "content": "hi"}])


def test_user_context(build):
    service = build(FakeClient())
    service.workouts.save(
        Workout(
            user_id="u1",
            date="2024-05-01",
            title="Push",
            exercises=[WorkoutExercise(name="Bench Press", sets=[ExerciseSet(reps="3", weight="120")])],
        )
    )
    service.workouts.max_lifts.add("u1", "Bench Press", 120, "3", "2024-05-01")
    service.my_exercises.add("u1", {"id": "push_up", "name": "Push Up"})
    context = service.user_context("u1")["content"]
    assert "Push (2024-05-01, 1 exercises)" in context
    assert "Bench Press: 120kg" in context
    assert "Favorite exercises: Push Up" in context
    empty = service.user_context("u2")["content"]
    assert "None recorded" in empty
    assert "None saved" in empty


def test_chat_records_history(build):
    service = build(FakeClient(reply="Squat twice a week."))
    assert service.chat("u1", "How often should I squat?") == "Squat twice a week."
    history = service.history("u1")
    assert [m["role"] for m in history] == ["user", "assistant"]
    with pytest.raises(ValueError):
        service.chat("u1", "   ")


def test_cleanup_and_auto_cleanup(build):
    service = build(FakeClient())
    for i in range(30):
        service.record("u1", "user", f"m{i}")
    assert service.auto_cleanup("u1") == 0
    service.record("u1", "user", "m30")
    assert service.auto_cleanup("u1") == 16
    assert [m["content"] for m in service.history("u1")][-1] == "m30"
    assert len(service.history("u1", 50)) == 15
    assert service.cleanup("u1", keep=5) == 10
