import argparse
import csv
import json
import logging
import shutil
from typing import Optional

from db import (
    ExerciseLibraryRepository,
    WorkoutRepository,
    WorkoutExerciseRepository,
    WorkoutSetRepository,
    MaxLiftRepository,
    TemplateWorkoutRepository,
    TemplateExerciseRepository,
    TemplateSetRepository,
)
from algorithms.weight_converter import WeightConverter
from exercise_search_service import ExerciseSearchService, ExerciseSearchFilters
from workout_service import WorkoutService


def _workout_service(db_path: str) -> WorkoutService:
    return WorkoutService(
        WorkoutRepository(db_path),
        WorkoutExerciseRepository(db_path),
        WorkoutSetRepository(db_path),
        MaxLiftRepository(db_path),
        TemplateWorkoutRepository(db_path),
        TemplateExerciseRepository(db_path),
        TemplateSetRepository(db_path),
    )


def import_library(json_path: str, db_path: str, replace: bool = False) -> int:
    library = ExerciseLibraryRepository(db_path)
    if replace:
        library.delete_all()
    return library.import_json(json_path)


def search_library(
    db_path: str,
    search_term: Optional[str] = None,
    category: Optional[str] = None,
    equipment: Optional[list[str]] = None,
    muscle: Optional[str] = None,
    page_size: int = 20,
) -> list[dict]:
    service = ExerciseSearchService(ExerciseLibraryRepository(db_path))
    filters = ExerciseSearchFilters(
        category=category,
        equipment=equipment or [],
        primary_muscle=muscle,
        search_term=search_term,
        page_size=page_size,
    )
    return service.search(filters).data


def export_workouts(db_path: str, user_id: str, fmt: str, output_dir: str = ".") -> str:
    service = _workout_service(db_path)
    workouts = service.list_for_user(user_id)
    if fmt == "json":
        out_path = f"{output_dir}/workouts_{user_id}.json"
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump([w.to_dict() for w in workouts], f, indent=2)
    else:
        out_path = f"{output_dir}/workouts_{user_id}.csv"
        with open(out_path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["date", "title", "exercise", "set", "reps", "weight", "notes"])
            for w in workouts:
                for exercise in w.exercises:
                    for number, s in enumerate(exercise.sets, start=1):
                        writer.writerow(
                            [w.date, w.title, exercise.name, number, s.reps, s.weight, s.notes]
                        )
    return out_path


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = argparse.ArgumentParser(description="LiftLog utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    imp = sub.add_parser("import")
    imp.add_argument("--json", required=True)
    imp.add_argument("--db", default="liftlog.db")
    imp.add_argument("--replace", action="store_true")

    srch = sub.add_parser("search")
    srch.add_argument("term", nargs="?")
    srch.add_argument("--db", default="liftlog.db")
    srch.add_argument("--category")
    srch.add_argument("--equipment", action="append")
    srch.add_argument("--muscle")
    srch.add_argument("--limit", type=int, default=20)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="liftlog.db")
    exp.add_argument("--user", required=True)
    exp.add_argument("--fmt", choices=["csv", "json"], default="json")
    exp.add_argument("--out", default=".")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="liftlog.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="liftlog.db")

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=["kg", "lb"], required=True)

    args = parser.parse_args()

    if args.cmd == "import":
        count = import_library(args.json, args.db, args.replace)
        print(f"imported {count} exercises")
    elif args.cmd == "search":
        for exercise in search_library(
            args.db, args.term, args.category, args.equipment, args.muscle, args.limit
        ):
            print(f"{exercise['id']}\t{exercise['name']}\t{exercise['category']}")
    elif args.cmd == "export":
        print(export_workouts(args.db, args.user, args.fmt, args.out))
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "convert":
        other = "lb" if args.unit == "kg" else "kg"
        print(f"{args.weight} {args.unit} = {WeightConverter.convert(args.weight, args.unit, other)} {other}")


if __name__ == "__main__":
    main()
