import sqlite3
import os
import re
import json
import datetime
import logging
from contextlib import contextmanager
from typing import List, Tuple, Optional, Iterable

from config import YamlConfig
from settings_schema import SettingsSchema, validate_settings

logger = logging.getLogger(__name__)


class QueryError(ValueError):
    """Raised when a library query combines filters the store cannot serve."""


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "library_exercises": (
            """CREATE TABLE library_exercises (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT '',
                    difficulty TEXT,
                    level TEXT,
                    description TEXT,
                    video TEXT,
                    image_url TEXT,
                    equipment TEXT NOT NULL DEFAULT '[]',
                    primary_muscles TEXT NOT NULL DEFAULT '[]',
                    secondary_muscles TEXT NOT NULL DEFAULT '[]',
                    instructions TEXT NOT NULL DEFAULT '[]',
                    tips TEXT NOT NULL DEFAULT '[]',
                    variation_on TEXT NOT NULL DEFAULT '[]',
                    search_keywords TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "name",
                "category",
                "difficulty",
                "level",
                "description",
                "video",
                "image_url",
                "equipment",
                "primary_muscles",
                "secondary_muscles",
                "instructions",
                "tips",
                "variation_on",
                "search_keywords",
                "created_at",
                "updated_at",
            ],
        ),
        "library_exercise_terms": (
            """CREATE TABLE library_exercise_terms (
                    exercise_id TEXT NOT NULL,
                    field TEXT NOT NULL,
                    term TEXT NOT NULL,
                    PRIMARY KEY (exercise_id, field, term),
                    FOREIGN KEY(exercise_id) REFERENCES library_exercises(id) ON DELETE CASCADE
                );""",
            ["exercise_id", "field", "term"],
        ),
        "library_metadata": (
            """CREATE TABLE library_metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "workouts": (
            """CREATE TABLE workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    title TEXT NOT NULL,
                    notes TEXT,
                    duration INTEGER,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    created_at TEXT
                );""",
            [
                "id",
                "user_id",
                "date",
                "title",
                "notes",
                "duration",
                "is_completed",
                "completed_at",
                "created_at",
            ],
        ),
        "workout_exercises": (
            """CREATE TABLE workout_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    name TEXT NOT NULL,
                    notes TEXT,
                    is_max_lift INTEGER NOT NULL DEFAULT 0,
                    library_exercise_id TEXT,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_id",
                "position",
                "name",
                "notes",
                "is_max_lift",
                "library_exercise_id",
            ],
        ),
        "workout_sets": (
            """CREATE TABLE workout_sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_exercise_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    reps TEXT NOT NULL,
                    weight TEXT,
                    notes TEXT,
                    FOREIGN KEY(workout_exercise_id) REFERENCES workout_exercises(id) ON DELETE CASCADE
                );""",
            ["id", "workout_exercise_id", "position", "reps", "weight", "notes"],
        ),
        "max_lifts": (
            """CREATE TABLE max_lifts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    exercise_name TEXT NOT NULL,
                    weight REAL NOT NULL,
                    reps TEXT,
                    date TEXT NOT NULL,
                    workout_id INTEGER,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "user_id",
                "exercise_name",
                "weight",
                "reps",
                "date",
                "workout_id",
                "notes",
                "created_at",
            ],
        ),
        "my_exercises": (
            """CREATE TABLE my_exercises (
                    user_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    data TEXT NOT NULL,
                    added_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, exercise_id)
                );""",
            ["user_id", "exercise_id", "name", "data", "added_at"],
        ),
        "workout_templates": (
            """CREATE TABLE workout_templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    last_used TEXT
                );""",
            ["id", "user_id", "name", "notes", "created_at", "last_used"],
        ),
        "template_exercises": (
            """CREATE TABLE template_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    template_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    name TEXT NOT NULL,
                    notes TEXT,
                    FOREIGN KEY(template_id) REFERENCES workout_templates(id) ON DELETE CASCADE
                );""",
            ["id", "template_id", "position", "name", "notes"],
        ),
        "template_sets": (
            """CREATE TABLE template_sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    template_exercise_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    reps TEXT NOT NULL,
                    weight TEXT,
                    notes TEXT,
                    FOREIGN KEY(template_exercise_id) REFERENCES template_exercises(id) ON DELETE CASCADE
                );""",
            ["id", "template_exercise_id", "position", "reps", "weight", "notes"],
        ),
        "chat_messages": (
            """CREATE TABLE chat_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                );""",
            ["id", "user_id", "role", "content", "timestamp"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    def __init__(self, db_path: str = "liftlog.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            conn.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("rebuilding table %s", table)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col in ("position", "is_completed", "is_max_lift"):
                        return "0"
                    if col in (
                        "equipment",
                        "primary_muscles",
                        "secondary_muscles",
                        "instructions",
                        "tips",
                        "variation_on",
                        "search_keywords",
                    ):
                        return "'[]'"
                    if col in ("category", "created_at", "updated_at", "added_at"):
                        return "''"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = SettingsSchema().model_dump()
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, str(value)),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


def _now() -> str:
    return datetime.datetime.now().isoformat(timespec="seconds")


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def search_keywords(exercise: dict) -> list[str]:
    """Return the lowercase keywords an exercise can be found by."""
    name = exercise.get("name", "").lower().strip()
    words: set[str] = set()
    if name:
        words.add(name)
        words.update(w for w in re.split(r"[^a-z0-9]+", name) if w)
    if exercise.get("category"):
        words.add(exercise["category"].lower())
    for field in ("equipment", "primary_muscles", "secondary_muscles"):
        for value in exercise.get(field) or []:
            if value:
                words.add(value.lower())
    return sorted(words)


class ExerciseQuery:
    """Document-style query over the exercise library.

    Mirrors the restrictions of an index-backed document store: a single
    array membership filter per query, disjunctions of at most ten values,
    one sort field, and cursor pagination via ``start_after``.
    """

    ARRAY_FIELDS = ("equipment", "primary_muscles", "secondary_muscles", "search_keywords")
    SCALAR_FIELDS = ("id", "name", "category", "difficulty", "level")
    ORDER_FIELDS = ("name", "category", "difficulty", "created_at")
    MAX_DISJUNCTION = 10

    def __init__(self) -> None:
        self.equals: list[tuple[str, str]] = []
        self.in_filters: list[tuple[str, list[str]]] = []
        self.not_equals: list[tuple[str, str]] = []
        self.array_filter: tuple[str, str, list[str]] | None = None
        self.order_field = "name"
        self.direction = "asc"
        self.limit_count: int | None = None
        self.cursor: tuple[str, str] | None = None

    def _check_scalar(self, field: str) -> None:
        if field not in self.SCALAR_FIELDS:
            raise QueryError(f"cannot filter on {field}")

    def where_equal(self, field: str, value: str) -> "ExerciseQuery":
        self._check_scalar(field)
        self.equals.append((field, value))
        return self

    def where_not_equal(self, field: str, value: str) -> "ExerciseQuery":
        self._check_scalar(field)
        self.not_equals.append((field, value))
        return self

    def where_in(self, field: str, values: Iterable[str]) -> "ExerciseQuery":
        self._check_scalar(field)
        values = list(values)
        if not values:
            raise QueryError("in filter requires values")
        if len(values) > self.MAX_DISJUNCTION:
            raise QueryError(f"in filter supports at most {self.MAX_DISJUNCTION} values")
        self.in_filters.append((field, values))
        return self

    def where_array_contains(self, field: str, value: str) -> "ExerciseQuery":
        self._set_array_filter(field, "array-contains", [value])
        return self

    def where_array_contains_any(
        self, field: str, values: Iterable[str]
    ) -> "ExerciseQuery":
        self._set_array_filter(field, "array-contains-any", list(values))
        return self

    def _set_array_filter(self, field: str, op: str, values: list[str]) -> None:
        if self.array_filter is not None:
            raise QueryError("only one array filter is allowed per query")
        if field not in self.ARRAY_FIELDS:
            raise QueryError(f"{field} is not an array field")
        if not values:
            raise QueryError(f"{op} requires values")
        if len(values) > self.MAX_DISJUNCTION:
            raise QueryError(f"{op} supports at most {self.MAX_DISJUNCTION} values")
        self.array_filter = (field, op, values)

    def order_by(self, field: str, direction: str = "asc") -> "ExerciseQuery":
        if field not in self.ORDER_FIELDS:
            raise QueryError(f"cannot order by {field}")
        if direction not in ("asc", "desc"):
            raise QueryError("direction must be asc or desc")
        self.order_field = field
        self.direction = direction
        return self

    def limit(self, count: int) -> "ExerciseQuery":
        if count <= 0:
            raise QueryError("limit must be positive")
        self.limit_count = count
        return self

    def start_after(self, cursor: tuple[str, str] | None) -> "ExerciseQuery":
        self.cursor = tuple(cursor) if cursor else None
        return self

    def describe(self) -> dict:
        return {
            "equals": dict(self.equals),
            "in": dict(self.in_filters),
            "not_equal": dict(self.not_equals),
            "array_filter": (
                {
                    "field": self.array_filter[0],
                    "op": self.array_filter[1],
                    "values": self.array_filter[2],
                }
                if self.array_filter
                else None
            ),
            "order_by": [self.order_field, self.direction],
            "limit": self.limit_count,
            "start_after": list(self.cursor) if self.cursor else None,
        }

    def to_sql(self, columns: list[str]) -> tuple[str, tuple]:
        query = "SELECT " + ", ".join(f"e.{c}" for c in columns)
        query += " FROM library_exercises e"
        params: list = []
        if self.array_filter is not None:
            field, _op, values = self.array_filter
            placeholders = ",".join("?" for _ in values)
            query += (
                " JOIN (SELECT DISTINCT exercise_id FROM library_exercise_terms"
                f" WHERE field = ? AND term IN ({placeholders})) t"
                " ON t.exercise_id = e.id"
            )
            params.append(field)
            params.extend(values)
        query += " WHERE 1=1"
        for field, value in self.equals:
            query += f" AND e.{field} = ?"
            params.append(value)
        for field, values in self.in_filters:
            placeholders = ",".join("?" for _ in values)
            query += f" AND e.{field} IN ({placeholders})"
            params.extend(values)
        for field, value in self.not_equals:
            query += f" AND e.{field} != ?"
            params.append(value)
        order_expr = f"COALESCE(e.{self.order_field}, '')"
        if self.cursor is not None:
            value, last_id = self.cursor
            cmp = ">" if self.direction == "asc" else "<"
            query += f" AND ({order_expr} {cmp} ? OR ({order_expr} = ? AND e.id {cmp} ?))"
            params.extend([value or "", value or "", last_id])
        order = "ASC" if self.direction == "asc" else "DESC"
        query += f" ORDER BY {order_expr} {order}, e.id {order}"
        if self.limit_count is not None:
            query += " LIMIT ?"
            params.append(self.limit_count)
        query += ";"
        return query, tuple(params)


class ExerciseLibraryRepository(BaseRepository):
    """Repository for the shared exercise library."""

    COLUMNS = [
        "id",
        "name",
        "category",
        "difficulty",
        "level",
        "description",
        "video",
        "image_url",
        "equipment",
        "primary_muscles",
        "secondary_muscles",
        "instructions",
        "tips",
        "variation_on",
        "search_keywords",
        "created_at",
        "updated_at",
    ]
    LIST_COLUMNS = {
        "equipment",
        "primary_muscles",
        "secondary_muscles",
        "instructions",
        "tips",
        "variation_on",
        "search_keywords",
    }

    def _row_to_exercise(self, row: Tuple) -> dict:
        data = dict(zip(self.COLUMNS, row))
        for col in self.LIST_COLUMNS:
            data[col] = json.loads(data[col]) if data[col] else []
        return data

    def upsert(self, exercise: dict) -> str:
        name = (exercise.get("name") or "").strip()
        if not name:
            raise ValueError("exercise name required")
        exercise_id = exercise.get("id") or slugify(name)
        record = {col: exercise.get(col) for col in self.COLUMNS}
        record["id"] = exercise_id
        record["name"] = name
        record["category"] = exercise.get("category") or ""
        for col in self.LIST_COLUMNS:
            record[col] = list(exercise.get(col) or [])
        record["search_keywords"] = search_keywords(record)
        now = _now()
        existing = self.fetch_all(
            "SELECT created_at FROM library_exercises WHERE id = ?;", (exercise_id,)
        )
        record["created_at"] = (
            existing[0][0] if existing else exercise.get("created_at") or now
        )
        record["updated_at"] = now
        values = [
            json.dumps(record[c]) if c in self.LIST_COLUMNS else record[c]
            for c in self.COLUMNS
        ]
        placeholders = ", ".join("?" for _ in self.COLUMNS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in self.COLUMNS if c != "id")
        with self._connection() as conn:
            conn.execute(
                f"INSERT INTO library_exercises ({', '.join(self.COLUMNS)}) VALUES ({placeholders}) "
                f"ON CONFLICT(id) DO UPDATE SET {updates};",
                values,
            )
            conn.execute(
                "DELETE FROM library_exercise_terms WHERE exercise_id = ?;",
                (exercise_id,),
            )
            for field in ExerciseQuery.ARRAY_FIELDS:
                for term in dict.fromkeys(record[field]):
                    conn.execute(
                        "INSERT OR IGNORE INTO library_exercise_terms (exercise_id, field, term) VALUES (?, ?, ?);",
                        (exercise_id, field, term),
                    )
        return exercise_id

    def import_json(self, path: str) -> int:
        """Load exercises from a JSON list or ``{"exercises": [...]}`` file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        records = data.get("exercises", []) if isinstance(data, dict) else data
        count = 0
        for record in records:
            self.upsert(record)
            count += 1
        logger.info("imported %d exercises from %s", count, path)
        self.refresh_metadata(data_source=os.path.basename(path))
        return count

    def fetch(self, exercise_id: str) -> Optional[dict]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self.COLUMNS)} FROM library_exercises WHERE id = ?;",
            (exercise_id,),
        )
        return self._row_to_exercise(rows[0]) if rows else None

    def run(self, query: ExerciseQuery) -> list[dict]:
        sql, params = query.to_sql(self.COLUMNS)
        return [self._row_to_exercise(r) for r in self.fetch_all(sql, params)]

    def fetch_all_exercises(self) -> list[dict]:
        return self.run(ExerciseQuery())

    def count(self) -> int:
        rows = self.fetch_all("SELECT COUNT(*) FROM library_exercises;")
        return int(rows[0][0])

    def distinct(self, field: str) -> list[str]:
        if field in ExerciseQuery.ARRAY_FIELDS:
            rows = self.fetch_all(
                "SELECT DISTINCT term FROM library_exercise_terms WHERE field = ? ORDER BY term;",
                (field,),
            )
        elif field in ExerciseQuery.SCALAR_FIELDS:
            rows = self.fetch_all(
                f"SELECT DISTINCT {field} FROM library_exercises WHERE {field} IS NOT NULL AND {field} != '' ORDER BY {field};"
            )
        else:
            raise ValueError(f"unknown field {field}")
        return [r[0] for r in rows]

    def delete(self, exercise_id: str) -> None:
        if self.fetch(exercise_id) is None:
            raise ValueError("exercise not found")
        self.execute("DELETE FROM library_exercises WHERE id = ?;", (exercise_id,))

    def delete_all(self) -> None:
        self._delete_all("library_exercises")
        self._delete_all("library_exercise_terms")
        self._delete_all("library_metadata")

    def refresh_metadata(
        self, version: str = "1.0.0", data_source: str = "local"
    ) -> dict:
        """Recompute and store the library metadata document."""
        muscles = sorted(
            set(self.distinct("primary_muscles")) | set(self.distinct("secondary_muscles"))
        )
        metadata = {
            "total_exercises": self.count(),
            "categories": self.distinct("category"),
            "equipment": self.distinct("equipment"),
            "muscles": muscles,
            "levels": self.distinct("level"),
            "difficulties": self.distinct("difficulty"),
            "last_updated": _now(),
            "version": version,
            "data_source": data_source,
        }
        self.execute(
            "INSERT INTO library_metadata (key, value) VALUES ('current', ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (json.dumps(metadata),),
        )
        return metadata

    def fetch_metadata(self) -> Optional[dict]:
        rows = self.fetch_all("SELECT value FROM library_metadata WHERE key = 'current';")
        return json.loads(rows[0][0]) if rows else None


class WorkoutRepository(BaseRepository):
    """Repository for workout table operations."""

    def create(
        self,
        user_id: str,
        date: str,
        title: str,
        notes: str | None = None,
        duration: Optional[int] = None,
        is_completed: bool = False,
        completed_at: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO workouts (user_id, date, title, notes, duration, is_completed, completed_at, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                date,
                title,
                notes,
                duration,
                int(is_completed),
                completed_at,
                _now(),
            ),
        )

    def update(
        self,
        workout_id: int,
        date: str,
        title: str,
        notes: str | None,
        duration: Optional[int],
    ) -> None:
        self.fetch_detail(workout_id)
        self.execute(
            "UPDATE workouts SET date = ?, title = ?, notes = ?, duration = ? WHERE id = ?;",
            (date, title, notes, duration, workout_id),
        )

    def fetch_for_user(
        self,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> List[Tuple[int, str, str, Optional[str], Optional[int], int, Optional[str]]]:
        query = (
            "SELECT id, date, title, notes, duration, is_completed, completed_at FROM workouts WHERE user_id = ?"
        )
        params: list[str | int] = [user_id]
        if start_date:
            query += " AND date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND date <= ?"
            params.append(end_date)
        order = "DESC" if descending else "ASC"
        query += f" ORDER BY date {order}, id {order}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        query += ";"
        return self.fetch_all(query, tuple(params))

    def fetch_detail(
        self, workout_id: int
    ) -> Tuple[int, str, str, str, Optional[str], Optional[int], int, Optional[str]]:
        rows = self.fetch_all(
            "SELECT id, user_id, date, title, notes, duration, is_completed, completed_at FROM workouts WHERE id = ?;",
            (workout_id,),
        )
        if not rows:
            raise ValueError("workout not found")
        return rows[0]

    def set_completed(
        self, workout_id: int, completed_at: str, duration: Optional[int]
    ) -> None:
        self.fetch_detail(workout_id)
        self.execute(
            "UPDATE workouts SET is_completed = 1, completed_at = ?, duration = COALESCE(?, duration) WHERE id = ?;",
            (completed_at, duration, workout_id),
        )

    def dates_in_range(self, user_id: str, start_date: str, end_date: str) -> list[str]:
        rows = self.fetch_all(
            "SELECT DISTINCT date FROM workouts WHERE user_id = ? AND date >= ? AND date <= ? ORDER BY date;",
            (user_id, start_date, end_date),
        )
        return [r[0] for r in rows]

    def delete(self, workout_id: int) -> None:
        self.fetch_detail(workout_id)
        self.execute("DELETE FROM workouts WHERE id = ?;", (workout_id,))

    def delete_all(self) -> None:
        self._delete_all("workouts")


class WorkoutExerciseRepository(BaseRepository):
    """Repository for exercises logged within a workout."""

    def add(
        self,
        workout_id: int,
        position: int,
        name: str,
        notes: Optional[str] = None,
        is_max_lift: bool = False,
        library_exercise_id: Optional[str] = None,
    ) -> int:
        return self.execute(
            "INSERT INTO workout_exercises (workout_id, position, name, notes, is_max_lift, library_exercise_id) VALUES (?, ?, ?, ?, ?, ?);",
            (workout_id, position, name, notes, int(is_max_lift), library_exercise_id),
        )

    def fetch_for_workout(
        self, workout_id: int
    ) -> List[Tuple[int, str, Optional[str], int, Optional[str]]]:
        return self.fetch_all(
            "SELECT id, name, notes, is_max_lift, library_exercise_id FROM workout_exercises WHERE workout_id = ? ORDER BY position, id;",
            (workout_id,),
        )

    def delete_for_workout(self, workout_id: int) -> None:
        self.execute(
            "DELETE FROM workout_exercises WHERE workout_id = ?;", (workout_id,)
        )


class WorkoutSetRepository(BaseRepository):
    """Repository for sets of a logged exercise."""

    def add(
        self,
        exercise_id: int,
        position: int,
        reps: str,
        weight: str | None = None,
        notes: str | None = None,
    ) -> int:
        if not str(reps).strip():
            raise ValueError("reps required")
        return self.execute(
            "INSERT INTO workout_sets (workout_exercise_id, position, reps, weight, notes) VALUES (?, ?, ?, ?, ?);",
            (exercise_id, position, str(reps), weight, notes),
        )

    def fetch_for_exercise(
        self, exercise_id: int
    ) -> List[Tuple[int, str, Optional[str], Optional[str]]]:
        return self.fetch_all(
            "SELECT id, reps, weight, notes FROM workout_sets WHERE workout_exercise_id = ? ORDER BY position, id;",
            (exercise_id,),
        )


class MaxLiftRepository(BaseRepository):
    """Repository for personal-best lifts recorded per user."""

    def add(
        self,
        user_id: str,
        exercise_name: str,
        weight: float,
        reps: str | None,
        date: str,
        workout_id: Optional[int] = None,
        notes: str | None = None,
    ) -> int:
        if weight <= 0:
            raise ValueError("weight must be positive")
        return self.execute(
            "INSERT INTO max_lifts (user_id, exercise_name, weight, reps, date, workout_id, notes, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (user_id, exercise_name, weight, reps, date, workout_id, notes or None, _now()),
        )

    def fetch_for_user(
        self, user_id: str, exercise_name: str | None = None
    ) -> list[tuple[int, str, float, Optional[str], str, Optional[int], Optional[str]]]:
        query = (
            "SELECT id, exercise_name, weight, reps, date, workout_id, notes FROM max_lifts WHERE user_id = ?"
        )
        params: list[str] = [user_id]
        if exercise_name:
            query += " AND lower(exercise_name) = lower(?)"
            params.append(exercise_name)
        query += " ORDER BY date DESC, id DESC;"
        return self.fetch_all(query, tuple(params))

    def delete(self, lift_id: int) -> None:
        rows = self.fetch_all("SELECT id FROM max_lifts WHERE id = ?;", (lift_id,))
        if not rows:
            raise ValueError("max lift not found")
        self.execute("DELETE FROM max_lifts WHERE id = ?;", (lift_id,))


class MyExerciseRepository(BaseRepository):
    """Repository for each user's personal exercise list."""

    _LIST_FIELDS = (
        "primary_muscles",
        "secondary_muscles",
        "equipment",
        "instructions",
        "tips",
        "variation_on",
    )

    def add(self, user_id: str, exercise: dict) -> str:
        if not exercise.get("name"):
            raise ValueError("exercise name required")
        exercise_id = exercise.get("id") or (
            f"exercise_{int(datetime.datetime.now().timestamp() * 1000)}"
        )
        added_at = _now()
        clean = {k: v for k, v in exercise.items() if v is not None}
        clean["id"] = exercise_id
        clean["added_at"] = added_at
        self.execute(
            "INSERT INTO my_exercises (user_id, exercise_id, name, data, added_at) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id, exercise_id) DO UPDATE SET name=excluded.name, data=excluded.data, added_at=excluded.added_at;",
            (user_id, exercise_id, clean["name"], json.dumps(clean), added_at),
        )
        return exercise_id

    def remove(self, user_id: str, exercise_id: str) -> None:
        if not self.is_added(user_id, exercise_id):
            raise ValueError("exercise not found")
        self.execute(
            "DELETE FROM my_exercises WHERE user_id = ? AND exercise_id = ?;",
            (user_id, exercise_id),
        )

    def fetch_all_exercises(self, user_id: str) -> list[dict]:
        rows = self.fetch_all(
            "SELECT data FROM my_exercises WHERE user_id = ? ORDER BY name COLLATE NOCASE, exercise_id;",
            (user_id,),
        )
        result = []
        for (data,) in rows:
            record = json.loads(data)
            for field in self._LIST_FIELDS:
                record.setdefault(field, [])
            record.setdefault("description", "")
            result.append(record)
        return result

    def is_added(self, user_id: str, exercise_id: str) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM my_exercises WHERE user_id = ? AND exercise_id = ?;",
            (user_id, exercise_id),
        )
        return bool(rows)

    def clear(self, user_id: str) -> None:
        self.execute("DELETE FROM my_exercises WHERE user_id = ?;", (user_id,))

    def names(self, user_id: str) -> list[str]:
        return [e["name"] for e in self.fetch_all_exercises(user_id)]


class TemplateWorkoutRepository(BaseRepository):
    """Repository for favorite workout templates."""

    def create(self, user_id: str, name: str, notes: str | None = None) -> int:
        if not name.strip():
            raise ValueError("template name required")
        return self.execute(
            "INSERT INTO workout_templates (user_id, name, notes, created_at) VALUES (?, ?, ?, ?);",
            (user_id, name.strip(), notes, _now()),
        )

    def fetch_for_user(self, user_id: str) -> list[tuple[int, str, Optional[str], Optional[str]]]:
        return self.fetch_all(
            "SELECT id, name, notes, last_used FROM workout_templates WHERE user_id = ? ORDER BY name COLLATE NOCASE, id;",
            (user_id,),
        )

    def fetch_detail(self, template_id: int) -> tuple[int, str, str, Optional[str]]:
        rows = self.fetch_all(
            "SELECT id, user_id, name, notes FROM workout_templates WHERE id = ?;",
            (template_id,),
        )
        if not rows:
            raise ValueError("template not found")
        return rows[0]

    def delete(self, template_id: int) -> None:
        self.fetch_detail(template_id)
        self.execute("DELETE FROM workout_templates WHERE id = ?;", (template_id,))

    def update_last_used(self, template_id: int) -> None:
        self.execute(
            "UPDATE workout_templates SET last_used = ? WHERE id = ?;",
            (datetime.date.today().isoformat(), template_id),
        )


class TemplateExerciseRepository(BaseRepository):
    """Repository for exercises belonging to templates."""

    def add(self, template_id: int, position: int, name: str, notes: str | None = None) -> int:
        return self.execute(
            "INSERT INTO template_exercises (template_id, position, name, notes) VALUES (?, ?, ?, ?);",
            (template_id, position, name, notes),
        )

    def fetch_for_template(self, template_id: int) -> list[tuple[int, str, Optional[str]]]:
        return self.fetch_all(
            "SELECT id, name, notes FROM template_exercises WHERE template_id = ? ORDER BY position, id;",
            (template_id,),
        )


class TemplateSetRepository(BaseRepository):
    """Repository for template sets."""

    def add(
        self,
        exercise_id: int,
        position: int,
        reps: str,
        weight: str | None = None,
        notes: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO template_sets (template_exercise_id, position, reps, weight, notes) VALUES (?, ?, ?, ?, ?);",
            (exercise_id, position, reps, weight, notes),
        )

    def fetch_for_exercise(self, exercise_id: int) -> list[tuple[int, str, Optional[str], Optional[str]]]:
        return self.fetch_all(
            "SELECT id, reps, weight, notes FROM template_sets WHERE template_exercise_id = ? ORDER BY position, id;",
            (exercise_id,),
        )


class ChatMessageRepository(BaseRepository):
    """Repository for stored assistant conversations."""

    def add(self, user_id: str, role: str, content: str, timestamp: str | None = None) -> int:
        if role not in ("user", "assistant", "system"):
            raise ValueError("invalid role")
        return self.execute(
            "INSERT INTO chat_messages (user_id, role, content, timestamp) VALUES (?, ?, ?, ?);",
            (user_id, role, content, timestamp or _now()),
        )

    def fetch_recent(self, user_id: str, limit: int = 20) -> list[tuple[int, str, str, str]]:
        """Return the newest ``limit`` messages in chronological order."""
        rows = self.fetch_all(
            "SELECT id, role, content, timestamp FROM chat_messages WHERE user_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?;",
            (user_id, limit),
        )
        return list(reversed(rows))

    def count(self, user_id: str) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM chat_messages WHERE user_id = ?;", (user_id,)
        )
        return int(rows[0][0])

    def keep_latest(self, user_id: str, keep: int) -> int:
        """Delete all but the newest ``keep`` messages; return how many went."""
        before = self.count(user_id)
        self.execute(
            "DELETE FROM chat_messages WHERE user_id = ? AND id NOT IN ("
            "SELECT id FROM chat_messages WHERE user_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?);",
            (user_id, user_id, keep),
        )
        return before - self.count(user_id)


class SettingsRepository(BaseRepository):
    """Repository for application settings synchronized with YAML."""

    TEXT_KEYS = {"weight_unit", "chat_model", "openai_api_key"}

    def __init__(
        self, db_path: str = "liftlog.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, int | float | str] = {}
        for k, v in rows:
            if k in self.TEXT_KEYS:
                result[k] = v
                continue
            try:
                result[k] = int(v)
            except ValueError:
                try:
                    result[k] = float(v)
                except ValueError:
                    result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, str(value)),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

    def set_text(self, key: str, value: str) -> None:
        if key not in SettingsSchema.model_fields:
            raise ValueError(f"unknown setting {key}")
        candidate = self._raw_all_settings()
        candidate[key] = value
        validate_settings(candidate)
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, str(value)),
        )
        self._sync_to_yaml()

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        data = self._raw_all_settings()
        data.pop("openai_api_key", None)
        return data
