import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from exercises import (
    AnswerValidator,
    ImportOrchestrator,
    MigrationTransformer,
    PipelineConfig,
    PipelineError,
    ProgressTracker,
    QualityChecker,
    SchemaValidator,
)
from exercises.importers import LegacyImporter, default_importers
from models import Exercise
from storage import DEFAULT_DB_PATH, get_exercise_repo, get_progress_repo, init_schema
from ui import PipelineUI

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with subcommands."""
    parser = argparse.ArgumentParser(description="CQL exercise content pipeline")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="JSON configuration file (default: built-in defaults)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=DEFAULT_DB_PATH,
        help=f"SQLite catalog path (default: {DEFAULT_DB_PATH})",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    migrate_parser = subparsers.add_parser(
        "migrate", help="Migrate legacy exercise records"
    )
    migrate_parser.add_argument(
        "input",
        type=Path,
        nargs="?",
        default=DATA_DIR / LegacyImporter.data_file,
        help="Legacy records as a JSON array (default: bundled legacy data)",
    )
    migrate_parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Write the valid migrated exercises to this JSON file",
    )
    migrate_parser.add_argument(
        "--save", action="store_true", help="Store valid exercises in the catalog"
    )

    import_parser = subparsers.add_parser(
        "import", help="Import exercises from bundled content sources"
    )
    import_parser.add_argument(
        "--sources",
        "-s",
        nargs="+",
        default=None,
        help="Source names to import (default: all registered sources)",
    )
    import_parser.add_argument(
        "--no-process", action="store_true", help="Skip the enhancement pass"
    )
    import_parser.add_argument(
        "--no-merge", action="store_true", help="Keep duplicate exercises"
    )
    import_parser.add_argument(
        "--output", "-o", type=Path, default=None, help="Write exercises to JSON"
    )
    import_parser.add_argument(
        "--save", action="store_true", help="Store imported exercises in the catalog"
    )

    validate_parser = subparsers.add_parser(
        "validate", help="Schema-check and score an exercise document"
    )
    validate_parser.add_argument("exercise", type=Path, help="Exercise JSON file")

    check_parser = subparsers.add_parser(
        "check", help="Judge submitted code against an exercise"
    )
    check_parser.add_argument(
        "exercise", help="Exercise JSON file, or an exercise id in the catalog"
    )
    check_parser.add_argument("code", type=Path, help="File with the submitted code")
    check_parser.add_argument(
        "--user",
        "-u",
        default=None,
        help="Record the submission as this user's progress",
    )
    check_parser.add_argument(
        "--time-spent", type=int, default=0, help="Seconds spent on the attempt"
    )
    check_parser.add_argument(
        "--hints-used", type=int, default=0, help="Hints revealed during the attempt"
    )

    subparsers.add_parser("catalog", help="List exercises stored in the catalog")

    review_parser = subparsers.add_parser(
        "review", help="List a user's exercises due for review"
    )
    review_parser.add_argument("user", help="User id")

    return parser


def load_config(path: Path | None) -> PipelineConfig:
    if path is None:
        return PipelineConfig()
    return PipelineConfig.from_file(path)


def write_exercises(path: Path, exercises: list[Exercise]) -> None:
    """Write exercises to a JSON file as camelCase documents."""
    with open(path, "w") as f:
        json.dump([e.to_document() for e in exercises], f, indent=2, ensure_ascii=False)


def save_exercises(db_path: Path, exercises: list[Exercise]) -> None:
    init_schema(db_path)
    repo = get_exercise_repo(db_path)
    for exercise in exercises:
        repo.save(exercise)
    logger.info("Saved %d exercises to %s", len(exercises), db_path)


def load_exercise(
    reference: str, db_path: Path, validator: SchemaValidator, ui: PipelineUI
) -> Exercise | None:
    """Load an exercise from a JSON file path, or by id from the catalog.

    A file that fails schema validation is reported and yields None.
    """
    path = Path(reference)
    if path.is_file():
        with open(path) as f:
            document = json.load(f)
        result = validator.validate(document)
        if not result.success:
            exercise_id = document.get("id", "") if isinstance(document, dict) else ""
            ui.show_schema(result, exercise_id)
            return None
        return Exercise.model_validate(document)
    init_schema(db_path)
    exercise = get_exercise_repo(db_path).get_by_id(reference)
    if exercise is None:
        ui.show_error(f"Exercise not found: {reference}")
    return exercise


def run_migrate(args, config: PipelineConfig, ui: PipelineUI) -> int:
    with open(args.input) as f:
        records = json.load(f)
    if not isinstance(records, list):
        ui.show_error(f"{args.input} must contain a JSON array")
        return 1

    transformer = MigrationTransformer(config.migration)
    batch = transformer.migrate_batch(
        records,
        validator=SchemaValidator(config.schema_validator),
        checker=QualityChecker(config.quality),
    )
    ui.show_migration(batch)

    if args.output:
        write_exercises(args.output, batch["exercises"])
        ui.show_success(f"Wrote {len(batch['exercises'])} exercises to {args.output}")
    if args.save:
        save_exercises(args.db, batch["exercises"])
    summary = batch["summary"]
    return 0 if summary["invalid"] == 0 and not summary["collection_errors"] else 1


def run_import(args, config: PipelineConfig, ui: PipelineUI) -> int:
    validator = SchemaValidator(config.schema_validator)
    importers = default_importers(validator=validator)
    orchestrator = ImportOrchestrator(
        importers=importers, validator=validator, config=config
    )
    options = config.import_options.model_copy(
        update={
            "process_content": config.import_options.process_content
            and not args.no_process,
            "merge_duplicates": config.import_options.merge_duplicates
            and not args.no_merge,
        }
    )

    results = orchestrator.run(args.sources, options)
    if results.reports:
        ui.show_import(results.reports, results.summary)

    exercises = results.processed.exercises
    if args.output:
        write_exercises(args.output, exercises)
        ui.show_success(f"Wrote {len(exercises)} exercises to {args.output}")
    if args.save:
        save_exercises(args.db, exercises)
    return 0 if results.summary["sources"]["failed"] == 0 else 1


def run_validate(args, config: PipelineConfig, ui: PipelineUI) -> int:
    with open(args.exercise) as f:
        document = json.load(f)

    validator = SchemaValidator(config.schema_validator)
    result = validator.validate(document)
    ui.show_schema(result, document.get("id", "") if isinstance(document, dict) else "")
    if result.success:
        report = QualityChecker(config.quality).assess(document)
        ui.show_info(f"Quality score: {report.quality_score}")
        for suggestion in report.suggestions:
            ui.show_warning(f"  • {suggestion}")
    return 0 if result.success else 1


def run_check(args, config: PipelineConfig, ui: PipelineUI) -> int:
    exercise = load_exercise(
        args.exercise, args.db, SchemaValidator(config.schema_validator), ui
    )
    if exercise is None:
        return 1

    code = args.code.read_text()
    result = AnswerValidator(config.answer_validator).evaluate(exercise, code)
    ui.show_result(result, exercise.title)

    if args.user:
        init_schema(args.db)
        tracker = ProgressTracker(get_progress_repo(args.db))
        outcome = tracker.record_submission(
            args.user,
            exercise.id,
            code,
            result,
            time_spent=args.time_spent,
            hints_used=args.hints_used,
        )
        if outcome.is_new_completion:
            ui.show_success(f"Exercise {exercise.id} completed!")
        if outcome.progress.review_state and outcome.progress.review_state.due:
            due = outcome.progress.review_state.due.strftime("%Y-%m-%d %H:%M")
            ui.show_info(f"Next review: {due}")
    return 0 if result.passed else 1


def run_catalog(args, config: PipelineConfig, ui: PipelineUI) -> int:
    init_schema(args.db)
    ui.show_catalog(
        get_exercise_repo(args.db).get_all(),
        checker=QualityChecker(config.quality),
        validator=SchemaValidator(config.schema_validator),
    )
    return 0


def run_review(args, config: PipelineConfig, ui: PipelineUI) -> int:
    init_schema(args.db)
    repo = get_progress_repo(args.db)
    tracker = ProgressTracker(repo)
    due = tracker.due_for_review(args.user)
    if not due:
        ui.show_success("Nothing is due for review right now.")
        return 0
    ui.show_info(f"{len(due)} exercises due for review:")
    for exercise_id in due:
        recall = repo.get_progress(args.user, exercise_id).retrievability
        ui.show_info(f"  • {exercise_id} (recall {recall:.0%})")
    return 0


COMMANDS = {
    "migrate": run_migrate,
    "import": run_import,
    "validate": run_validate,
    "check": run_check,
    "catalog": run_catalog,
    "review": run_review,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point with CLI routing."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )

    if args.command is None:
        parser.print_help()
        return 2

    ui = PipelineUI(Console())
    try:
        config = load_config(args.config)
        return COMMANDS[args.command](args, config, ui)
    except (OSError, json.JSONDecodeError) as exc:
        ui.show_error(str(exc))
        return 1
    except ValidationError as exc:
        ui.show_error(f"Validation failed: {exc}")
        return 1
    except PipelineError as exc:
        logger.error("Pipeline failed: %s", exc, extra={"context": exc.context})
        ui.show_error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
