"""Tests for migrating legacy exercise records."""

import re

from exercises import MigrationConfig, MigrationTransformer, SchemaValidator
from exercises.migration import INFERRED_PREREQUISITES_TAG, file_language
from models import (
    Difficulty,
    Exercise,
    ExerciseType,
    ReviewStatus,
    SchemaError,
    SchemaValidationResult,
    ValidationStrategy,
)


class TestMigrateRecord:
    """Tests for migrating one legacy record."""

    def test_named_record_uses_slug_id(self, legacy_records, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate(legacy_records[0], 0)
        assert exercise.id == "exercise-1"
        assert exercise.title == "Exercise 1"
        assert exercise.description == "Whitespace and comments"

    def test_unnamed_record_gets_positional_id(self, fixed_clock):
        """A record with no name at index 4 becomes legacy-exercise-5."""
        exercise = MigrationTransformer(clock=fixed_clock).migrate(
            {"content": "Write an expression."}, 4
        )
        assert exercise.id == "legacy-exercise-5"
        assert exercise.title == "Exercise 5"
        assert exercise.description == "Legacy exercise migration"
        assert exercise.difficulty == Difficulty.INTERMEDIATE
        assert exercise.prerequisites == ["legacy-exercise-4", "legacy-exercise-3"]

    def test_record_without_tabs_has_no_files(self, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate({"name": "Empty"}, 0)
        assert exercise.files == []
        assert exercise.content.instructions == "No instructions available"
        assert SchemaValidator().validate(exercise).success

    def test_metadata_marks_migration(self, legacy_records, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate(legacy_records[1], 1)
        assert exercise.metadata.review_status == ReviewStatus.REVIEW
        assert exercise.metadata.author == "CQL Code Clinic Migration"
        assert exercise.metadata.license == "CC-BY-4.0"
        assert exercise.metadata.created == fixed_clock()

    def test_migration_is_deterministic(self, legacy_records, fixed_clock):
        """The same record, index and clock always give the same exercise."""
        transformer = MigrationTransformer(clock=fixed_clock)
        first = transformer.migrate(legacy_records[1], 1)
        second = transformer.migrate(legacy_records[1], 1)
        assert first == second

    def test_migrated_record_passes_schema(self, legacy_records, fixed_clock):
        transformer = MigrationTransformer(clock=fixed_clock)
        for index, record in enumerate(legacy_records):
            exercise = transformer.migrate(record, index)
            assert SchemaValidator().validate(exercise.to_document()).success

    def test_content_list_is_joined(self, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate(
            {"name": "Joined", "content": ["<p>one</p>", "<p>two</p>"]}, 0
        )
        assert exercise.content.instructions == "<p>one</p>\n\n<p>two</p>"


class TestMalformedRecords:
    """Tests for legacy records with unusable values."""

    def test_wrong_types_fall_back_to_placeholders(self, fixed_clock):
        record = {"name": 42, "content": {"html": "<p>x</p>"}, "tabs": "test.cql"}
        exercise = MigrationTransformer(clock=fixed_clock).migrate(record, 1)
        assert exercise.id == "legacy-exercise-2"
        assert exercise.title == "Exercise 2"
        assert exercise.content.instructions == "No instructions available"
        assert exercise.files == []
        assert SchemaValidator().validate(exercise).success

    def test_non_mapping_record_is_a_placeholder(self, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate("oops", 2)
        assert exercise.id == "legacy-exercise-3"

    def test_content_chunks_that_are_not_text_are_dropped(self, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate(
            {"name": "Mixed", "content": ["<p>one</p>", 3, None]}, 0
        )
        assert exercise.content.instructions == "<p>one</p>"

    def test_bad_tab_entries(self, fixed_clock):
        record = {
            "name": "Tabs",
            "tabs": [7, {"name": 5, "key": "define X: 1", "template": None}],
        }
        exercise = MigrationTransformer(clock=fixed_clock).migrate(record, 0)
        assert [f.name for f in exercise.files] == ["exercise-1.cql", "exercise-2.cql"]
        assert exercise.files[0].solution is None
        assert exercise.files[1].template == ""
        assert exercise.files[1].solution == "define X: 1"
        assert SchemaValidator().validate(exercise).success

    def test_batch_with_malformed_records_completes(self, legacy_records, fixed_clock):
        """A malformed record never aborts the rest of the batch."""
        batch = MigrationTransformer(clock=fixed_clock).migrate_batch(
            [legacy_records[0], {"name": 42}, None, {"tabs": {"name": "a.cql"}}]
        )
        summary = batch["summary"]
        assert summary["total"] == 4
        assert summary["migrated"] == 4
        assert summary["invalid"] == 0
        assert summary["collection_errors"] == []
        assert [e.id for e in batch["exercises"]] == [
            "exercise-1",
            "legacy-exercise-2",
            "legacy-exercise-3",
            "legacy-exercise-4",
        ]


class TestFileNames:
    """Tests for turning tab names into unique file names."""

    def test_repeated_tab_names_are_suffixed(self, fixed_clock):
        record = {
            "name": "Two tabs",
            "tabs": [
                {"name": "a.cql", "key": "x"},
                {"name": "a.cql", "key": "y"},
                {"name": "a.cql"},
            ],
        }
        exercise = MigrationTransformer(clock=fixed_clock).migrate(record, 0)
        assert [f.name for f in exercise.files] == ["a.cql", "a-2.cql", "a-3.cql"]
        assert [f.solution for f in exercise.files] == ["x", "y", None]
        assert SchemaValidator().validate(exercise).success

    def test_default_name_does_not_collide(self, fixed_clock):
        record = {"name": "Defaults", "tabs": [{"name": "exercise-2.cql"}, {}]}
        exercise = MigrationTransformer(clock=fixed_clock).migrate(record, 0)
        assert [f.name for f in exercise.files] == ["exercise-2.cql", "exercise-2-2.cql"]
        assert SchemaValidator().validate(exercise).success

    def test_names_without_extension(self, fixed_clock):
        record = {"name": "Bare", "tabs": [{"name": "Makefile"}, {"name": "Makefile"}]}
        exercise = MigrationTransformer(clock=fixed_clock).migrate(record, 0)
        assert [f.name for f in exercise.files] == ["Makefile", "Makefile-2"]


class TestValidationMigration:
    """Tests for turning legacy answers and predicates into validation specs."""

    def test_answer_becomes_escaped_required_pattern(self, legacy_records, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate(legacy_records[1], 1)
        key = legacy_records[1]["tabs"][0]["key"]
        validation = exercise.validation
        assert validation.strategy == ValidationStrategy.PATTERN_MATCH
        assert validation.passing_score == 70
        pattern = validation.patterns[0]
        assert pattern.required
        assert pattern.points == 100
        assert re.search(pattern.pattern, key)

    def test_legacy_predicate_is_kept_for_manual_port(self, legacy_records, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate(legacy_records[0], 0)
        validation = exercise.validation
        assert validation.strategy == ValidationStrategy.CUSTOM_FUNCTION
        assert validation.needs_manual_port
        assert validation.legacy_predicate == legacy_records[0]["tabs"][0]["eval"]
        assert validation.custom_validator is None

    def test_files_keep_template_and_answer(self, legacy_records, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate(legacy_records[0], 0)
        file = exercise.files[0]
        assert file.name == "test.cql"
        assert file.template == "This is a comment"
        assert file.solution == "// This is a comment"
        assert file.language == "cql"


class TestInference:
    """Tests for the heuristics that infer structure from text."""

    def test_difficulty_keywords_win_over_position(self, fixed_clock):
        transformer = MigrationTransformer(clock=fixed_clock)
        assert transformer.migrate({"name": "Advanced queries"}, 0).difficulty == Difficulty.ADVANCED
        assert transformer.migrate({"name": "Simple values"}, 9).difficulty == Difficulty.BEGINNER
        assert (
            transformer.migrate({"name": "Intermediate logic"}, 0).difficulty
            == Difficulty.INTERMEDIATE
        )

    def test_difficulty_by_position(self, fixed_clock):
        transformer = MigrationTransformer(clock=fixed_clock)
        levels = [transformer.migrate({}, i).difficulty for i in range(7)]
        assert levels == [
            Difficulty.BEGINNER,
            Difficulty.BEGINNER,
            Difficulty.BEGINNER,
            Difficulty.INTERMEDIATE,
            Difficulty.INTERMEDIATE,
            Difficulty.ADVANCED,
            Difficulty.INTERMEDIATE,
        ]

    def test_estimated_time_from_content_and_template(self, fixed_clock):
        transformer = MigrationTransformer(clock=fixed_clock)
        assert transformer.migrate({"content": "x" * 250}, 0).estimated_time == 6
        short_template = {"content": "x" * 250, "tabs": [{"template": "t" * 150}]}
        assert transformer.migrate(short_template, 0).estimated_time == 11
        long_template = {"content": "x" * 250, "tabs": [{"template": "t" * 400}]}
        assert transformer.migrate(long_template, 0).estimated_time == 21

    def test_estimated_time_is_bounded(self, fixed_clock):
        transformer = MigrationTransformer(clock=fixed_clock)
        assert transformer.migrate({}, 0).estimated_time == 5
        assert transformer.migrate({"content": "x" * 5000}, 0).estimated_time == 45

    def test_concepts_always_start_with_syntax(self, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate({"name": "Whitespace"}, 0)
        assert exercise.concepts == ["syntax", "whitespace"]

    def test_concepts_are_capped(self, fixed_clock):
        config = MigrationConfig(max_concepts=2)
        exercise = MigrationTransformer(config, clock=fixed_clock).migrate(
            {"name": "Comments, operators and literal strings"}, 0
        )
        assert len(exercise.concepts) == 2

    def test_first_exercise_tags(self, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate({"name": "Whitespace"}, 0)
        assert exercise.tags == [
            "legacy",
            "migrated",
            "beginner",
            "syntax",
            "whitespace",
            "first",
            "introduction",
            "fundamentals",
        ]

    def test_later_exercises_flag_inferred_prerequisites(self, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate({"name": "Whitespace"}, 3)
        assert INFERRED_PREREQUISITES_TAG in exercise.tags
        assert "first" not in exercise.tags
        assert len(exercise.tags) == len(set(exercise.tags))

    def test_prerequisites_use_actual_preceding_ids(self, fixed_clock):
        transformer = MigrationTransformer(clock=fixed_clock)
        exercise = transformer.migrate({}, 3, preceding_ids=["a", "b", "c"])
        assert exercise.prerequisites == ["c", "b"]

    def test_type_inference(self, fixed_clock):
        transformer = MigrationTransformer(clock=fixed_clock)
        assert transformer.migrate({"name": "CQL tutorial"}, 0).type == ExerciseType.TUTORIAL
        assert transformer.migrate({"name": "Final challenge"}, 0).type == ExerciseType.CHALLENGE
        assert transformer.migrate({"name": "Debug me"}, 0).type == ExerciseType.DEBUG
        assert transformer.migrate({"name": "Unit test"}, 0).type == ExerciseType.ASSESSMENT
        assert transformer.migrate({"name": "Values"}, 0).type == ExerciseType.PRACTICE

    def test_hint_levels_are_consecutive(self, legacy_records, fixed_clock):
        transformer = MigrationTransformer(clock=fixed_clock)
        for index, record in enumerate(legacy_records):
            hints = transformer.migrate(record, index).content.hints
            assert [h.level for h in hints] == list(range(1, len(hints) + 1))

    def test_comment_answer_gets_comment_hint(self, legacy_records, fixed_clock):
        hints = MigrationTransformer(clock=fixed_clock).migrate(legacy_records[0], 0).content.hints
        assert len(hints) == 4
        assert "comments" in hints[2].text

    def test_operator_common_errors(self, legacy_records, fixed_clock):
        """The operators exercise warns about <> and spaced comparisons."""
        exercise = MigrationTransformer(clock=fixed_clock).migrate(legacy_records[1], 1)
        patterns = [e.pattern for e in exercise.feedback.common_errors]
        assert patterns == ["<>", "< ="]

    def test_learning_objectives(self, legacy_records, fixed_clock):
        exercise = MigrationTransformer(clock=fixed_clock).migrate(legacy_records[0], 0)
        objectives = exercise.analytics.learning_objectives
        assert "Understand CQL whitespace handling" in objectives
        assert "Learn to use CQL comment syntax" in objectives

    def test_file_language(self):
        assert file_language("main.cql") == "cql"
        assert file_language("README.md") == "markdown"
        assert file_language("data.JSON") == "json"
        assert file_language("Makefile") == "cql"


class TestMigrateBatch:
    """Tests for migrating and reporting on a whole collection."""

    def test_batch_summary(self, legacy_records, fixed_clock):
        batch = MigrationTransformer(clock=fixed_clock).migrate_batch(legacy_records)
        summary = batch["summary"]
        assert summary["total"] == 3
        assert summary["migrated"] == 3
        assert summary["valid"] == 3
        assert summary["invalid"] == 0
        assert [e.id for e in batch["exercises"]] == ["exercise-1", "exercise-2", "exercise-3"]

    def test_batch_chains_prerequisites(self, legacy_records, fixed_clock):
        batch = MigrationTransformer(clock=fixed_clock).migrate_batch(legacy_records)
        prerequisites = [e.prerequisites for e in batch["exercises"]]
        assert prerequisites == [[], ["exercise-1"], ["exercise-2", "exercise-1"]]
        assert SchemaValidator().validate_collection(batch["exercises"]).success

    def test_batch_records_quality_score(self, legacy_records, fixed_clock):
        batch = MigrationTransformer(clock=fixed_clock).migrate_batch(legacy_records)
        for result in batch["results"]:
            assert result.exercise.metadata.quality_score == result.quality.quality_score

    def test_manual_port_is_recommended(self, legacy_records, fixed_clock):
        batch = MigrationTransformer(clock=fixed_clock).migrate_batch(legacy_records)
        manual = [r for r in batch["recommendations"] if r.type == "manual-port"]
        assert [r.exercise_id for r in manual] == ["exercise-1"]

    def test_empty_batch(self, fixed_clock):
        batch = MigrationTransformer(clock=fixed_clock).migrate_batch([])
        assert batch["summary"]["total"] == 0
        assert batch["summary"]["average_quality"] == 0.0
        assert batch["exercises"] == []

    def test_repeated_names_get_unique_ids(self, fixed_clock):
        record = {"name": "Same", "tabs": [{"name": "a.cql", "key": "x"}]}
        batch = MigrationTransformer(clock=fixed_clock).migrate_batch(
            [record, record, record]
        )
        exercises = batch["exercises"]
        assert [e.id for e in exercises] == ["same", "same-2", "same-3"]
        assert exercises[1].prerequisites == ["same"]
        assert exercises[2].prerequisites == ["same-2", "same"]
        assert batch["summary"]["collection_errors"] == []
        assert SchemaValidator().validate_collection(exercises).success

    def test_collection_errors_are_reported(self, fixed_clock):
        """A rejected record leaves its successor with an unknown prerequisite."""

        class RejectFirst(SchemaValidator):
            def validate(self, document):
                if isinstance(document, Exercise) and document.id == "first":
                    return SchemaValidationResult(
                        success=False,
                        errors=[SchemaError(path="id", message="rejected")],
                    )
                return super().validate(document)

        batch = MigrationTransformer(clock=fixed_clock).migrate_batch(
            [{"name": "First"}, {"name": "Second"}], validator=RejectFirst()
        )
        assert batch["summary"]["collection_errors"] == [
            "second.prerequisites: Unknown prerequisite: first"
        ]
        collection = [r for r in batch["recommendations"] if r.type == "collection"]
        assert collection[0].priority == "high"
