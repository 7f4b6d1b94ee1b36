import datetime
import json
import time
from typing import Callable, List, Dict

from fastapi import FastAPI, HTTPException, Body, APIRouter

from db import (
    ExerciseLibraryRepository,
    WorkoutRepository,
    WorkoutExerciseRepository,
    WorkoutSetRepository,
    MaxLiftRepository,
    MyExerciseRepository,
    TemplateWorkoutRepository,
    TemplateExerciseRepository,
    TemplateSetRepository,
    ChatMessageRepository,
    SettingsRepository,
)
from exercise_search_service import ExerciseSearchService, ExerciseSearchFilters
from exercise_library import ExerciseLibrary
from workout_service import Workout, WorkoutService
from workout_session import WorkoutSession
from workout_parser import validate_ai_response
from chat_service import ChatService
from algorithms.calendar_tools import month_grid, relative_label, is_upcoming


def _http_error(e: ValueError) -> HTTPException:
    code = 404 if "not found" in str(e) else 400
    return HTTPException(status_code=code, detail=str(e))


def _split(value: str | None) -> list[str]:
    return [v for v in value.split("|") if v] if value else []


class LiftLogAPI:
    """Provides REST endpoints for the exercise library and workout logging."""

    def __init__(
        self,
        db_path: str = "liftlog.db",
        yaml_path: str = "settings.yaml",
        *,
        chat_client=None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.library_repo = ExerciseLibraryRepository(db_path)
        self.workouts = WorkoutRepository(db_path)
        self.workout_exercises = WorkoutExerciseRepository(db_path)
        self.workout_sets = WorkoutSetRepository(db_path)
        self.max_lifts = MaxLiftRepository(db_path)
        self.my_exercises = MyExerciseRepository(db_path)
        self.template_workouts = TemplateWorkoutRepository(db_path)
        self.template_exercises = TemplateExerciseRepository(db_path)
        self.template_sets = TemplateSetRepository(db_path)
        self.chat_messages = ChatMessageRepository(db_path)
        self.search = ExerciseSearchService(self.library_repo)
        self.library = ExerciseLibrary(self.search)
        self.workout_service = WorkoutService(
            self.workouts,
            self.workout_exercises,
            self.workout_sets,
            self.max_lifts,
            self.template_workouts,
            self.template_exercises,
            self.template_sets,
        )
        self.chat = ChatService(
            self.chat_messages,
            self.workout_service,
            self.my_exercises,
            self.settings,
            client=chat_client,
        )
        self.clock = clock
        self.sessions: dict[int, WorkoutSession] = {}
        self.app = FastAPI(title="LiftLog API")
        self._setup_routes()

    def _filters(
        self,
        category: str = None,
        equipment: str = None,
        primary_muscle: str = None,
        secondary_muscle: str = None,
        search_term: str = None,
        difficulty: str = None,
        page_size: int = None,
        cursor: str = None,
        sort_by: str = "name",
        sort_direction: str = "asc",
    ) -> ExerciseSearchFilters:
        parsed_cursor = None
        if cursor:
            try:
                value, last_id = json.loads(cursor)
            except (json.JSONDecodeError, TypeError, ValueError):
                raise ValueError("cursor must be a JSON [value, id] pair")
            parsed_cursor = (value, last_id)
        return ExerciseSearchFilters(
            category=category,
            equipment=_split(equipment),
            primary_muscle=primary_muscle,
            secondary_muscle=secondary_muscle,
            search_term=search_term,
            difficulty=difficulty,
            page_size=page_size or self.settings.get_int("search_page_size", 50),
            cursor=parsed_cursor,
            sort_by=sort_by,
            sort_direction=sort_direction,
        )

    def _session(self, workout_id: int) -> WorkoutSession:
        session = self.sessions.get(workout_id)
        if session is None:
            raise ValueError("session not found")
        return session

    def _setup_routes(self) -> None:
        library_router = APIRouter(prefix="/library", tags=["Library"])

        @self.app.get("/health")
        def health():
            return {"status": "ok", "exercises": self.library_repo.count()}

        @library_router.get("/search")
        def search_exercises(
            category: str = None,
            equipment: str = None,
            primary_muscle: str = None,
            secondary_muscle: str = None,
            search_term: str = None,
            difficulty: str = None,
            page_size: int = None,
            cursor: str = None,
            sort_by: str = "name",
            sort_direction: str = "asc",
        ):
            try:
                filters = self._filters(
                    category,
                    equipment,
                    primary_muscle,
                    secondary_muscle,
                    search_term,
                    difficulty,
                    page_size,
                    cursor,
                    sort_by,
                    sort_direction,
                )
                return self.search.search(filters).to_dict()
            except ValueError as e:
                raise _http_error(e)

        @library_router.get("/search/plan")
        def search_plan(
            category: str = None,
            equipment: str = None,
            primary_muscle: str = None,
            secondary_muscle: str = None,
            search_term: str = None,
            difficulty: str = None,
            page_size: int = None,
        ):
            try:
                filters = self._filters(
                    category,
                    equipment,
                    primary_muscle,
                    secondary_muscle,
                    search_term,
                    difficulty,
                    page_size,
                )
                return self.search.plan(filters).to_dict()
            except ValueError as e:
                raise _http_error(e)

        @library_router.post("/import")
        def import_exercises(exercises: List[Dict] = Body(...)):
            try:
                ids = [self.library_repo.upsert(e) for e in exercises]
            except ValueError as e:
                raise _http_error(e)
            self.library_repo.refresh_metadata(data_source="api")
            self.search.clear_cache()
            return {"imported": len(ids), "ids": ids}

        @library_router.delete("/exercises/{exercise_id}")
        def delete_exercise(exercise_id: str):
            try:
                self.library_repo.delete(exercise_id)
            except ValueError as e:
                raise _http_error(e)
            self.library_repo.refresh_metadata(data_source="api")
            self.search.clear_cache()
            return {"status": "deleted"}

        @library_router.get("/metadata")
        def metadata():
            data = self.search.get_metadata()
            if data is None:
                raise HTTPException(status_code=404, detail="metadata not found")
            return data

        @library_router.get("/categories")
        def categories():
            return self.search.get_categories()

        @library_router.get("/equipment")
        def equipment():
            return self.search.get_equipment()

        @library_router.get("/muscles")
        def muscles():
            return self.search.get_muscle_groups()

        @library_router.get("/popular")
        def popular(limit: int = 10):
            return self.library.get_popular_exercises(limit)

        @library_router.get("/stats")
        def stats():
            return self.library.get_library_stats()

        @library_router.get("/stats/enhanced")
        def enhanced_stats():
            return self.library.get_enhanced_stats()

        @library_router.get("/grouped")
        def grouped():
            return self.library.get_exercises_by_categories()

        @library_router.get("/by_name")
        def by_name(name: str):
            exercise = self.library.get_exercise_by_name(name)
            if exercise is None:
                raise HTTPException(status_code=404, detail="exercise not found")
            return exercise

        @library_router.get("/variations")
        def variations(name: str):
            return self.library.get_exercise_variations(name)

        @library_router.get("/recommended")
        def recommended(user_id: str, target_muscles: str = None):
            lifts = self.workout_service.list_max_lifts(user_id)
            return self.library.get_recommended_exercises(
                lifts, _split(target_muscles) or None
            )

        @library_router.get("/generate")
        def generate(
            target_muscles: str = None,
            equipment: str = None,
            difficulty: str = "intermediate",
            duration: int = 60,
        ):
            try:
                return self.library.create_workout(
                    _split(target_muscles), _split(equipment), difficulty, duration
                )
            except ValueError as e:
                raise _http_error(e)

        @library_router.get("/exercises/{exercise_id}")
        def get_exercise(exercise_id: str):
            exercise = self.search.get_exercise_by_id(exercise_id)
            if exercise is None:
                raise HTTPException(status_code=404, detail="exercise not found")
            return exercise

        @library_router.get("/exercises/{exercise_id}/similar")
        def similar(exercise_id: str, max_results: int = 5):
            if self.search.get_exercise_by_id(exercise_id) is None:
                raise HTTPException(status_code=404, detail="exercise not found")
            return self.search.get_similar_exercises(exercise_id, max_results)

        @library_router.get("/exercises/{exercise_id}/complementary")
        def complementary(exercise_id: str):
            exercise = self.search.get_exercise_by_id(exercise_id)
            if exercise is None:
                raise HTTPException(status_code=404, detail="exercise not found")
            return self.library.get_complementary_exercises(exercise)

        @self.app.post("/users/{user_id}/workouts")
        def create_workout(user_id: str, data: Dict = Body(...)):
            data = {**data, "user_id": user_id, "id": None}
            data.setdefault("date", datetime.date.today().isoformat())
            try:
                workout = Workout.from_dict(data)
                wid = self.workout_service.save(workout)
                if data.get("save_max_lifts"):
                    self.workout_service.save_max_lifts(workout)
                return {"id": wid}
            except ValueError as e:
                raise _http_error(e)

        @self.app.get("/users/{user_id}/workouts")
        def list_workouts(
            user_id: str,
            start_date: str = None,
            end_date: str = None,
            limit: int = None,
        ):
            today = datetime.date.today()
            return [
                {
                    **w.to_dict(),
                    "label": relative_label(w.date, today),
                    "is_upcoming": is_upcoming(w.date, w.is_completed, today),
                }
                for w in self.workout_service.list_for_user(
                    user_id, start_date, end_date, limit
                )
            ]

        @self.app.get("/workouts/{workout_id}")
        def get_workout(workout_id: int):
            try:
                return self.workout_service.get(workout_id).to_dict()
            except ValueError as e:
                raise _http_error(e)

        @self.app.put("/workouts/{workout_id}")
        def update_workout(workout_id: int, data: Dict = Body(...)):
            try:
                current = self.workout_service.get(workout_id)
                data = {**data, "id": workout_id, "user_id": current.user_id}
                data.setdefault("date", current.date)
                workout = Workout.from_dict(data)
                self.workout_service.save(workout)
                if data.get("save_max_lifts"):
                    self.workout_service.save_max_lifts(workout)
                return {"status": "updated"}
            except ValueError as e:
                raise _http_error(e)

        @self.app.delete("/workouts/{workout_id}")
        def delete_workout(workout_id: int):
            try:
                self.workout_service.delete(workout_id)
            except ValueError as e:
                raise _http_error(e)
            self.sessions.pop(workout_id, None)
            return {"status": "deleted"}

        @self.app.post("/workouts/{workout_id}/complete")
        def complete_workout(workout_id: int, duration: int = None):
            try:
                return self.workout_service.complete(workout_id, duration).to_dict()
            except ValueError as e:
                raise _http_error(e)

        @self.app.post("/workouts/{workout_id}/max_lifts")
        def record_max_lifts(workout_id: int):
            try:
                workout = self.workout_service.get(workout_id)
            except ValueError as e:
                raise _http_error(e)
            return {"ids": self.workout_service.save_max_lifts(workout)}

        @self.app.post("/workouts/{workout_id}/session/start")
        def start_session(workout_id: int):
            try:
                workout = self.workout_service.get(workout_id)
            except ValueError as e:
                raise _http_error(e)
            session = WorkoutSession(
                workout, self.settings.get_int("rest_seconds", 90), self.clock
            )
            self.sessions[workout_id] = session
            return session.to_dict()

        @self.app.get("/workouts/{workout_id}/session")
        def get_session(workout_id: int):
            try:
                return self._session(workout_id).to_dict()
            except ValueError as e:
                raise _http_error(e)

        @self.app.post("/workouts/{workout_id}/session/steps/{step_id}/complete")
        def complete_step(workout_id: int, step_id: str):
            try:
                session = self._session(workout_id)
                session.complete_step(step_id)
                return session.to_dict()
            except ValueError as e:
                raise _http_error(e)

        @self.app.post("/workouts/{workout_id}/session/steps/{step_id}/uncomplete")
        def uncomplete_step(workout_id: int, step_id: str):
            try:
                session = self._session(workout_id)
                session.uncomplete_step(step_id)
                return session.to_dict()
            except ValueError as e:
                raise _http_error(e)

        @self.app.post("/workouts/{workout_id}/session/toggle")
        def toggle_timer(workout_id: int):
            try:
                session = self._session(workout_id)
            except ValueError as e:
                raise _http_error(e)
            session.toggle_timer()
            return session.to_dict()

        @self.app.post("/workouts/{workout_id}/session/skip_rest")
        def skip_rest(workout_id: int):
            try:
                session = self._session(workout_id)
            except ValueError as e:
                raise _http_error(e)
            session.skip_rest()
            return session.to_dict()

        @self.app.post("/workouts/{workout_id}/session/finish")
        def finish_session(workout_id: int):
            try:
                session = self._session(workout_id)
            except ValueError as e:
                raise _http_error(e)
            workout = session.finish()
            result = self.workout_service.complete(workout_id, workout.duration)
            del self.sessions[workout_id]
            return result.to_dict()

        @self.app.post("/workouts/{workout_id}/template")
        def save_template(workout_id: int, name: str = None):
            try:
                return {"id": self.workout_service.save_as_template(workout_id, name)}
            except ValueError as e:
                raise _http_error(e)

        @self.app.get("/users/{user_id}/templates")
        def list_templates(user_id: str):
            return self.workout_service.list_templates(user_id)

        @self.app.get("/templates/{template_id}")
        def get_template(template_id: int):
            try:
                return self.workout_service.get_template(template_id)
            except ValueError as e:
                raise _http_error(e)

        @self.app.post("/templates/{template_id}/use")
        def use_template(template_id: int, date: str = None):
            try:
                wid = self.workout_service.create_from_template(
                    template_id, date or datetime.date.today().isoformat()
                )
                return {"id": wid}
            except ValueError as e:
                raise _http_error(e)

        @self.app.delete("/templates/{template_id}")
        def delete_template(template_id: int):
            try:
                self.workout_service.delete_template(template_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise _http_error(e)

        @self.app.get("/users/{user_id}/max_lifts")
        def list_max_lifts(user_id: str, exercise: str = None):
            return self.workout_service.list_max_lifts(user_id, exercise)

        @self.app.get("/users/{user_id}/max_lifts/best")
        def best_lifts(user_id: str):
            return self.workout_service.best_lifts(user_id)

        @self.app.post("/users/{user_id}/max_lifts")
        def add_max_lift(
            user_id: str,
            exercise_name: str,
            weight: float,
            reps: str = None,
            date: str = None,
            notes: str = None,
        ):
            try:
                lid = self.max_lifts.add(
                    user_id,
                    exercise_name,
                    weight,
                    reps,
                    date or datetime.date.today().isoformat(),
                    notes=notes,
                )
                return {"id": lid}
            except ValueError as e:
                raise _http_error(e)

        @self.app.delete("/max_lifts/{lift_id}")
        def delete_max_lift(lift_id: int):
            try:
                self.max_lifts.delete(lift_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise _http_error(e)

        @self.app.get("/users/{user_id}/my_exercises")
        def list_my_exercises(user_id: str):
            return self.my_exercises.fetch_all_exercises(user_id)

        @self.app.post("/users/{user_id}/my_exercises")
        def add_my_exercise(user_id: str, exercise: Dict = Body(...)):
            try:
                return {"id": self.my_exercises.add(user_id, exercise)}
            except ValueError as e:
                raise _http_error(e)

        @self.app.get("/users/{user_id}/my_exercises/{exercise_id}/added")
        def is_added(user_id: str, exercise_id: str):
            return {"added": self.my_exercises.is_added(user_id, exercise_id)}

        @self.app.delete("/users/{user_id}/my_exercises/{exercise_id}")
        def remove_my_exercise(user_id: str, exercise_id: str):
            try:
                self.my_exercises.remove(user_id, exercise_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise _http_error(e)

        @self.app.delete("/users/{user_id}/my_exercises")
        def clear_my_exercises(user_id: str):
            self.my_exercises.clear(user_id)
            return {"status": "cleared"}

        @self.app.post("/users/{user_id}/workouts/from_ai")
        def workout_from_ai(user_id: str, response: str = Body(...), date: str = Body(None)):
            result = validate_ai_response(response)
            if not result.is_valid:
                raise HTTPException(
                    status_code=400,
                    detail=f"Workout validation failed: {result.error}",
                )
            try:
                workout = self.workout_service.create_from_plan(user_id, result.workout, date)
            except ValueError as e:
                raise _http_error(e)
            return workout.to_dict()

        @self.app.post("/users/{user_id}/chat")
        def send_chat(user_id: str, message: str = Body(..., embed=True)):
            try:
                reply = self.chat.chat(user_id, message)
            except ValueError as e:
                raise _http_error(e)
            validation = validate_ai_response(reply)
            return {
                "reply": reply,
                "workout": validation.workout.model_dump() if validation.is_valid else None,
            }

        @self.app.get("/users/{user_id}/chat/history")
        def chat_history(user_id: str, limit: int = 20):
            return self.chat.history(user_id, limit)

        @self.app.post("/users/{user_id}/chat/cleanup")
        def chat_cleanup(user_id: str, keep: int = 20):
            return {"removed": self.chat.cleanup(user_id, keep)}

        @self.app.get("/calendar/{year}/{month}")
        def calendar_month(year: int, month: int, user_id: str):
            try:
                grid = month_grid(year, month)
            except ValueError as e:
                raise _http_error(e)
            dates = set(self.workout_service.workout_dates(user_id, year, month))
            return [
                None
                if day is None
                else {"date": day.isoformat(), "has_workout": day.isoformat() in dates}
                for day in grid
            ]

        @self.app.get("/settings")
        def get_settings():
            return self.settings.all_settings()

        @self.app.post("/settings/{key}")
        def update_setting(key: str, value: str = Body(..., embed=True)):
            try:
                self.settings.set_text(key, value)
            except ValueError as e:
                raise _http_error(e)
            self.search.clear_cache()
            return {"status": "updated"}

        self.app.include_router(library_router)


api = LiftLogAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
