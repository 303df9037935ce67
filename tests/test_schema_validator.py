"""Tests for structural and semantic validation of exercise documents."""

import copy

from exercises import SchemaValidator, SchemaValidatorConfig, find_prerequisite_cycles
from models import Severity


def _paths(result):
    return [error.path for error in result.errors]


def _messages(result):
    return [error.message for error in result.errors]


class TestStructuralValidation:
    """Tests for required fields, types and value ranges."""

    def test_valid_document_passes(self, sample_document):
        """A complete document validates with no errors or warnings."""
        result = SchemaValidator().validate(sample_document)
        assert result.success
        assert result.errors == []
        assert result.warnings == []

    def test_exercise_instance_is_accepted(self, sample_exercise):
        """An Exercise model validates the same way as its document."""
        assert SchemaValidator().validate(sample_exercise).success

    def test_missing_title_is_reported(self, sample_document):
        """A missing required field produces an error at its path."""
        del sample_document["title"]
        result = SchemaValidator().validate(sample_document)
        assert not result.success
        assert "title" in _paths(result)

    def test_unknown_difficulty_is_reported(self, sample_document):
        sample_document["difficulty"] = "impossible"
        result = SchemaValidator().validate(sample_document)
        assert not result.success
        assert "difficulty" in _paths(result)

    def test_estimated_time_must_be_positive(self, sample_document):
        """Estimated time below one minute is out of range."""
        sample_document["estimatedTime"] = 0
        result = SchemaValidator().validate(sample_document)
        assert not result.success
        assert "estimatedTime" in _paths(result)

    def test_nested_errors_use_dotted_paths(self, sample_document):
        """Errors inside nested lists carry their full location."""
        sample_document["content"]["hints"][1]["level"] = 0
        result = SchemaValidator().validate(sample_document)
        assert not result.success
        assert "content.hints.1.level" in _paths(result)

    def test_several_errors_are_all_reported(self, sample_document):
        del sample_document["title"]
        del sample_document["type"]
        result = SchemaValidator().validate(sample_document)
        assert {"title", "type"} <= set(_paths(result))

    def test_non_mapping_input_does_not_raise(self):
        """Malformed input becomes a failed result, never an exception."""
        result = SchemaValidator().validate("not a document")
        assert not result.success
        assert result.errors


class TestSemanticValidation:
    """Tests for checks the structural schema cannot express."""

    def test_duplicate_hint_levels_are_rejected(self, sample_document):
        sample_document["content"]["hints"][1]["level"] = 1
        result = SchemaValidator().validate(sample_document)
        assert not result.success
        assert "Hint levels must be unique" in _messages(result)

    def test_descending_hint_levels_are_rejected(self, sample_document):
        sample_document["content"]["hints"].reverse()
        result = SchemaValidator().validate(sample_document)
        assert "Hint levels must be in ascending order" in _messages(result)

    def test_hint_level_check_can_be_disabled(self, sample_document):
        sample_document["content"]["hints"][1]["level"] = 1
        config = SchemaValidatorConfig(check_hint_levels=False)
        assert SchemaValidator(config).validate(sample_document).success

    def test_invalid_regex_pattern_is_rejected(self, sample_document):
        """A pattern that does not compile is an error at the pattern's path."""
        sample_document["validation"]["patterns"][0]["pattern"] = "(unclosed"
        result = SchemaValidator().validate(sample_document)
        assert not result.success
        assert "validation.patterns.0.pattern" in _paths(result)

    def test_invalid_common_error_pattern_is_rejected(self, sample_document):
        sample_document["feedback"]["commonErrors"][0]["pattern"] = "[a-"
        result = SchemaValidator().validate(sample_document)
        assert "feedback.commonErrors.0.pattern" in _paths(result)

    def test_duplicate_file_names_are_rejected(self, sample_document):
        sample_document["files"].append(dict(sample_document["files"][0]))
        result = SchemaValidator().validate(sample_document)
        assert "files.1.name" in _paths(result)

    def test_pattern_match_without_patterns_warns(self, sample_document):
        """A missing pattern list is a warning, not an error."""
        sample_document["validation"]["patterns"] = []
        result = SchemaValidator().validate(sample_document)
        assert result.success
        assert [w.path for w in result.warnings] == ["validation.patterns"]
        assert result.warnings[0].severity == Severity.WARNING

    def test_legacy_predicate_warns_about_manual_port(self, sample_document):
        sample_document["validation"] = {
            "strategy": "custom-function",
            "legacyPredicate": "function (answers) { return true; }",
            "needsManualPort": True,
        }
        result = SchemaValidator().validate(sample_document)
        assert result.success
        assert "manual port" in result.warnings[0].message


class TestCollectionValidation:
    """Tests for cross-document id and prerequisite checks."""

    def test_duplicate_ids_are_rejected(self, sample_document):
        result = SchemaValidator().validate_collection([sample_document, sample_document])
        assert not result.success
        assert any("Duplicate exercise id" in m for m in _messages(result))

    def test_unknown_prerequisite_is_rejected(self, sample_document):
        sample_document["prerequisites"] = ["missing-exercise"]
        result = SchemaValidator().validate_collection([sample_document])
        assert any("Unknown prerequisite: missing-exercise" in m for m in _messages(result))

    def test_prerequisite_cycle_is_rejected(self, make_exercise):
        first = make_exercise(id="a", prerequisites=["b"])
        second = make_exercise(id="b", prerequisites=["a"])
        result = SchemaValidator().validate_collection([first, second])
        assert not result.success
        assert any(m.startswith("Prerequisite cycle") for m in _messages(result))

    def test_per_document_errors_are_prefixed_with_index(self, sample_document):
        broken = dict(sample_document, id="other")
        del broken["title"]
        result = SchemaValidator().validate_collection([sample_document, broken])
        assert "[1].title" in _paths(result)

    def test_valid_chain_passes(self, make_exercise):
        first = make_exercise(id="a")
        second = make_exercise(id="b", prerequisites=["a"])
        assert SchemaValidator().validate_collection([first, second]).success


class TestIdempotence:
    """Validating the same document twice gives the same verdict."""

    def test_valid_document(self, sample_document):
        validator = SchemaValidator()
        original = copy.deepcopy(sample_document)
        assert validator.validate(sample_document) == validator.validate(sample_document)
        assert sample_document == original

    def test_invalid_document(self, sample_document):
        del sample_document["title"]
        sample_document["files"].append(dict(sample_document["files"][0]))
        validator = SchemaValidator()
        first = validator.validate(sample_document)
        assert not first.success
        assert validator.validate(sample_document) == first


class TestFindPrerequisiteCycles:
    def test_acyclic_graph_has_no_cycles(self):
        assert find_prerequisite_cycles({"a": [], "b": ["a"], "c": ["a", "b"]}) == []

    def test_two_node_cycle_is_found_once(self):
        cycles = find_prerequisite_cycles({"a": ["b"], "b": ["a"]})
        assert len(cycles) == 1
        assert set(cycles[0]) == {"a", "b"}

    def test_self_dependency_is_a_cycle(self):
        assert find_prerequisite_cycles({"a": ["a"]}) == [["a"]]

    def test_unknown_targets_are_ignored(self):
        assert find_prerequisite_cycles({"a": ["zzz"]}) == []

    def test_deep_chain_without_cycle(self):
        graph = {f"n{i}": [f"n{i + 1}"] for i in range(5000)}
        graph["n5000"] = []
        assert find_prerequisite_cycles(graph) == []

    def test_deep_cycle_is_found(self):
        graph = {f"n{i}": [f"n{(i + 1) % 5000}"] for i in range(5000)}
        cycles = find_prerequisite_cycles(graph)
        assert len(cycles) == 1
        assert cycles[0][:2] == ["n0", "n1"]
        assert len(cycles[0]) == 5000
