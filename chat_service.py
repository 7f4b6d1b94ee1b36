from __future__ import annotations
import logging
import math
from typing import Any

from openai import (
    OpenAI,
    OpenAIError,
    APIConnectionError,
    AuthenticationError,
    RateLimitError,
)

from config import openai_api_key
from db import ChatMessageRepository, MyExerciseRepository, SettingsRepository
from workout_service import WorkoutService

logger = logging.getLogger(__name__)

MAX_CONVERSATION = 4
REDUCED_CONVERSATION = 2
TOKEN_LIMIT = 15000
AUTO_CLEANUP_THRESHOLD = 30
AUTO_CLEANUP_KEEP = 15

SYSTEM_PROMPT = """You are a fitness and strength training assistant. Only answer questions related to fitness, workout plans, exercise regimens, and strength training.

When asked to create workout plans or convert workouts to JSON format:
- Always provide valid JSON format with this structure: {"title": "Workout Name", "exercises": [{"name": "Exercise Name", "sets": [{"reps": "10", "weight": "135"}]}]}
- Each exercise should have a name (string) and sets (array of set objects)
- Each set should have reps (string), optional weight (string), and optional notes (string)
- Provide realistic rep ranges and weights
- Include 3-6 exercises per workout typically
- Make titles descriptive (e.g., "Push Day - Chest & Triceps", "Full Body Strength")"""


class ChatError(ValueError):
    """Raised when the assistant cannot produce a reply."""


def estimate_tokens(messages: list[dict]) -> int:
    return math.ceil(sum(len(m["content"]) for m in messages) / 4)


class ChatService:
    """Fitness assistant backed by the chat completions API."""

    def __init__(
        self,
        chat_repo: ChatMessageRepository,
        workout_service: WorkoutService,
        my_exercise_repo: MyExerciseRepository,
        settings_repo: SettingsRepository,
        client: Any | None = None,
    ) -> None:
        self.messages = chat_repo
        self.workouts = workout_service
        self.my_exercises = my_exercise_repo
        self.settings = settings_repo
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            key = openai_api_key(self.settings.get_text("openai_api_key", ""))
            if not key:
                raise ChatError(
                    "OpenAI API key is invalid or missing. Please check your configuration."
                )
            self._client = OpenAI(api_key=key)
        return self._client

    def user_context(self, user_id: str) -> dict:
        """Summarize recent training data as one system message."""
        workouts = self.workouts.list_for_user(user_id, limit=5)
        unit = self.settings.get_text("weight_unit", "kg")
        lifts = self.workouts.list_max_lifts(user_id)[:10]
        favorites = self.my_exercises.names(user_id)[:10]
        recent = ", ".join(
            f"{w.title} ({w.date}, {len(w.exercises)} exercises)" for w in workouts
        )
        content = (
            "User fitness profile summary:\n"
            f"- Recent workouts: {len(workouts)} workouts"
            + (f": {recent}" if recent else "")
            + "\n- Max lifts: "
            + (
                ", ".join(f"{l['exercise_name']}: {l['weight']:g}{unit}" for l in lifts)
                or "None recorded"
            )
            + "\n- Favorite exercises: "
            + (", ".join(favorites) or "None saved")
        )
        return {"role": "system", "content": content}

    def build_messages(self, conversation: list[dict], context: dict | None = None) -> list[dict]:
        base = [{"role": "system", "content": SYSTEM_PROMPT}]
        if context:
            base.append(context)
        messages = base + conversation[-MAX_CONVERSATION:]
        if estimate_tokens(messages) > TOKEN_LIMIT:
            logger.info("conversation too long, keeping last %d messages", REDUCED_CONVERSATION)
            messages = base + conversation[-REDUCED_CONVERSATION:]
        return messages

    def send(self, user_id: str, conversation: list[dict]) -> str:
        messages = self.build_messages(conversation, self.user_context(user_id))
        client = self._get_client()
        logger.debug("sending %d messages (~%d tokens)", len(messages), estimate_tokens(messages))
        try:
            response = client.chat.completions.create(
                model=self.settings.get_text("chat_model", "gpt-3.5-turbo"),
                messages=messages,
                max_tokens=self.settings.get_int("chat_max_tokens", 800),
                temperature=self.settings.get_float("chat_temperature", 0.7),
            )
        except AuthenticationError:
            raise ChatError(
                "OpenAI API key is invalid or missing. Please check your configuration."
            )
        except APIConnectionError:
            raise ChatError(
                "Network error: Unable to connect to OpenAI. Please check your internet connection."
            )
        except RateLimitError as e:
            if "quota" in str(e).lower() or "billing" in str(e).lower():
                raise ChatError(
                    "OpenAI quota exceeded. Please check your OpenAI account billing."
                )
            raise ChatError(f"OpenAI API Error: {e}")
        except OpenAIError as e:
            raise ChatError(f"OpenAI API Error: {e}")
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ChatError("No response from OpenAI")
        return content

    def chat(self, user_id: str, message: str) -> str:
        """Store the user message, ask the assistant and store its reply."""
        if not message.strip():
            raise ValueError("message required")
        self.record(user_id, "user", message)
        conversation = [{"role": r, "content": c} for _id, r, c, _ts in self.messages.fetch_recent(user_id, MAX_CONVERSATION)]
        reply = self.send(user_id, conversation)
        self.record(user_id, "assistant", reply)
        self.auto_cleanup(user_id)
        return reply

    def record(self, user_id: str, role: str, content: str) -> int:
        return self.messages.add(user_id, role, content)

    def history(self, user_id: str, limit: int = 20) -> list[dict]:
        return [
            {"id": mid, "role": role, "content": content, "timestamp": ts}
            for mid, role, content, ts in self.messages.fetch_recent(user_id, limit)
        ]

    def cleanup(self, user_id: str, keep: int = 20) -> int:
        removed = self.messages.keep_latest(user_id, keep)
        if removed:
            logger.info("removed %d old chat messages for %s", removed, user_id)
        return removed

    def auto_cleanup(self, user_id: str) -> int:
        if self.messages.count(user_id) > AUTO_CLEANUP_THRESHOLD:
            return self.cleanup(user_id, AUTO_CLEANUP_KEEP)
        return 0
