import json
import requests
from typing import Optional


class LiftLogClient:
    """Simple REST client for the LiftLog API."""

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self.base_url = base_url.rstrip("/")

    def search_exercises(self, cursor: Optional[tuple] = None, **filters) -> dict:
        params = {k: v for k, v in filters.items() if v is not None}
        if isinstance(params.get("equipment"), (list, tuple)):
            params["equipment"] = "|".join(params["equipment"])
        if cursor:
            params["cursor"] = json.dumps(list(cursor))
        resp = requests.get(f"{self.base_url}/library/search", params=params)
        resp.raise_for_status()
        return resp.json()

    def get_exercise(self, exercise_id: str) -> dict:
        resp = requests.get(f"{self.base_url}/library/exercises/{exercise_id}")
        resp.raise_for_status()
        return resp.json()

    def create_workout(self, user_id: str, workout: dict) -> int:
        resp = requests.post(f"{self.base_url}/users/{user_id}/workouts", json=workout)
        resp.raise_for_status()
        return resp.json()["id"]

    def list_workouts(self, user_id: str, **params: str) -> list:
        resp = requests.get(f"{self.base_url}/users/{user_id}/workouts", params=params)
        resp.raise_for_status()
        return resp.json()

    def complete_workout(self, workout_id: int, duration: Optional[int] = None) -> dict:
        resp = requests.post(
            f"{self.base_url}/workouts/{workout_id}/complete",
            params={"duration": duration} if duration is not None else None,
        )
        resp.raise_for_status()
        return resp.json()

    def max_lifts(self, user_id: str) -> list:
        resp = requests.get(f"{self.base_url}/users/{user_id}/max_lifts")
        resp.raise_for_status()
        return resp.json()

    def add_max_lift(self, user_id: str, exercise_name: str, weight: float, reps: Optional[str] = None) -> int:
        resp = requests.post(
            f"{self.base_url}/users/{user_id}/max_lifts",
            params={
                k: v
                for k, v in {"exercise_name": exercise_name, "weight": weight, "reps": reps}.items()
                if v is not None
            },
        )
        resp.raise_for_status()
        return resp.json()["id"]
