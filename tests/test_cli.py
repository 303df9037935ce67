"""Tests for the command line entry point."""

import json
from datetime import datetime

import pytest

import main
from models import ExerciseProgress, ProgressStatus, ReviewState
from storage import get_exercise_repo, get_progress_repo, init_schema


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "catalog.db"


@pytest.fixture
def exercise_file(tmp_path, sample_document):
    path = tmp_path / "exercise.json"
    path.write_text(json.dumps(sample_document))
    return path


def _code_file(tmp_path, code):
    path = tmp_path / "answer.cql"
    path.write_text(code)
    return path


class TestMigrateCommand:
    """Tests for the migrate subcommand."""

    def test_writes_migrated_exercises(self, tmp_path, db_path):
        output = tmp_path / "migrated.json"
        code = main.main(["--db", str(db_path), "migrate", "--output", str(output)])

        assert code == 0
        with open(output) as f:
            documents = json.load(f)
        assert [d["id"] for d in documents] == ["exercise-1", "exercise-2", "exercise-3"]

    def test_save_stores_in_catalog(self, db_path):
        assert main.main(["--db", str(db_path), "migrate", "--save"]) == 0
        assert len(get_exercise_repo(db_path).get_all()) == 3

    def test_non_array_input_fails(self, tmp_path, db_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{}")
        assert main.main(["--db", str(db_path), "migrate", str(bad)]) == 1

    def test_missing_input_fails(self, tmp_path, db_path):
        missing = tmp_path / "missing.json"
        assert main.main(["--db", str(db_path), "migrate", str(missing)]) == 1


class TestValidateCommand:
    def test_valid_document(self, exercise_file, db_path):
        assert main.main(["--db", str(db_path), "validate", str(exercise_file)]) == 0

    def test_invalid_document(self, tmp_path, db_path):
        path = tmp_path / "broken.json"
        path.write_text(json.dumps({"id": "x"}))
        assert main.main(["--db", str(db_path), "validate", str(path)]) == 1


class TestCheckCommand:
    """Tests for judging a submission from the command line."""

    def test_passing_submission(self, tmp_path, exercise_file, db_path):
        answer = _code_file(tmp_path, 'define "Inequality": 4 != 5')
        assert main.main(["--db", str(db_path), "check", str(exercise_file), str(answer)]) == 0

    def test_failing_submission(self, tmp_path, exercise_file, db_path):
        answer = _code_file(tmp_path, 'define "Inequality": 4 <> 5')
        assert main.main(["--db", str(db_path), "check", str(exercise_file), str(answer)]) == 1

    def test_malformed_exercise_file(self, tmp_path, db_path):
        """A document that fails the schema is reported, not raised."""
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"id": "x"}))
        answer = _code_file(tmp_path, "define X: 1")
        assert main.main(["--db", str(db_path), "check", str(bad), str(answer)]) == 1

    def test_unknown_exercise_id(self, tmp_path, db_path):
        answer = _code_file(tmp_path, "define X: 1")
        assert main.main(["--db", str(db_path), "check", "no-such-id", str(answer)]) == 1

    def test_user_progress_is_recorded(self, tmp_path, exercise_file, db_path):
        answer = _code_file(tmp_path, 'define "Inequality": 4 != 5')
        args = ["--db", str(db_path), "check", str(exercise_file), str(answer), "--user", "ana"]
        assert main.main(args) == 0
        assert main.main(["--db", str(db_path), "review", "ana"]) == 0


class TestRouting:
    def test_no_command_prints_help(self, db_path):
        assert main.main(["--db", str(db_path)]) == 2

    def test_catalog_on_empty_db(self, db_path):
        assert main.main(["--db", str(db_path), "catalog"]) == 0

    def test_invalid_config_file(self, tmp_path, db_path):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"quality": {"min_instructions_length": -1}}))
        assert main.main(["--config", str(config), "--db", str(db_path), "catalog"]) == 1


class TestReviewCommand:
    def test_due_reviews_show_recall(self, db_path, capsys):
        init_schema(db_path)
        get_progress_repo(db_path).save_progress(
            ExerciseProgress(
                user_id="ana",
                exercise_id="cql-basics-1",
                status=ProgressStatus.COMPLETED,
                review_state=ReviewState(
                    stability=2.0,
                    difficulty=5.0,
                    due=datetime(2000, 1, 3),
                    last_review=datetime(2000, 1, 1),
                    state=2,
                ),
            )
        )
        assert main.main(["--db", str(db_path), "review", "ana"]) == 0
        output = capsys.readouterr().out
        assert "cql-basics-1" in output
        assert "recall" in output
