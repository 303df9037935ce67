"""Tests for the content enhancement pass."""

from exercises import ContentProcessor, ProcessorConfig
from exercises.processor import (
    ConceptCoverageAnalyzer,
    ContentEnhancer,
    DifficultyProgressionAnalyzer,
    InstructionEnhancer,
    MetadataEnhancer,
    format_cql,
    generate_hints,
    generate_patterns,
    table_of_contents,
)
from models import Difficulty


class FailingEnhancer(ContentEnhancer):
    name = "failing"

    def __init__(self, failing_id):
        self.failing_id = failing_id

    def process(self, exercise):
        if exercise.id == self.failing_id:
            raise ValueError("cannot enhance")
        return exercise


def _weak(make_exercise, **updates):
    """An exercise with no hints and no validation patterns."""
    document = {
        "content": {"instructions": "Define a value."},
        "validation": {"strategy": "pattern-match"},
        "feedback": {},
    }
    document.update(updates)
    return make_exercise(**document)


class TestInstructionEnhancer:
    def test_cql_blocks_are_trimmed(self, make_exercise):
        exercise = make_exercise(
            content={"instructions": "Try:\n\n```cql\n   define X: 1   \n  define Y: 2\n```"}
        )
        enhanced = InstructionEnhancer().process(exercise)
        assert "```cql\ndefine X: 1\ndefine Y: 2\n```" in enhanced.content.instructions

    def test_long_instructions_get_table_of_contents(self, make_exercise):
        body = "\n\n".join(f"## Section {i}\n\n" + "text " * 20 for i in range(3))
        exercise = make_exercise(content={"instructions": body})
        enhanced = InstructionEnhancer(toc_min_length=100).process(exercise)
        assert enhanced.content.instructions.startswith("## Table of Contents")
        assert "- [Section 0](#section-0)" in enhanced.content.instructions

    def test_short_instructions_are_left_alone(self, sample_exercise):
        enhanced = InstructionEnhancer().process(sample_exercise)
        assert enhanced.content.instructions == sample_exercise.content.instructions

    def test_input_is_not_mutated(self, make_exercise):
        exercise = make_exercise(content={"instructions": "```cql\n  x\n```"})
        InstructionEnhancer().process(exercise)
        assert exercise.content.instructions == "```cql\n  x\n```"


class TestMetadataEnhancer:
    def test_content_metrics_are_recorded(self, sample_exercise, fixed_clock):
        enhanced = MetadataEnhancer(fixed_clock).process(sample_exercise)
        extra = enhanced.metadata.extra
        assert extra["processedAt"] == fixed_clock().isoformat()
        assert extra["codeLineCount"] == 1
        assert extra["conceptCoverage"] == 2
        assert extra["contentWordCount"] > 0


class TestGenerators:
    def test_format_cql(self):
        assert format_cql("  a  \n\tb") == "a\nb"

    def test_table_of_contents_needs_three_headings(self):
        assert table_of_contents("# One\n## Two") == ""

    def test_table_of_contents_indents_subheadings(self):
        toc = table_of_contents("## One\n### Two\n## Three!")
        assert toc.splitlines()[2:] == [
            "- [One](#one)",
            "  - [Two](#two)",
            "- [Three!](#three)",
        ]

    def test_hints_without_solution(self, make_exercise):
        exercise = make_exercise(files=[{"name": "main.cql"}])
        assert [h.level for h in generate_hints(exercise)] == [1, 2, 3]

    def test_hints_with_solution_end_with_full_answer(self, sample_exercise):
        hints = generate_hints(sample_exercise)
        assert [h.level for h in hints] == [1, 2, 3, 4, 5]
        assert hints[-1].code == sample_exercise.files[0].solution

    def test_patterns_split_points_over_define_lines(self, make_exercise):
        exercise = make_exercise(
            files=[
                {
                    "name": "main.cql",
                    "solution": "library L version '1'\n\ndefine A: 1\ndefine B: 2",
                }
            ]
        )
        patterns = generate_patterns(exercise)
        assert [p.points for p in patterns] == [50, 50]
        assert all(p.required for p in patterns)

    def test_patterns_fallback(self, make_exercise):
        exercise = make_exercise(files=[{"name": "main.cql"}])
        patterns = generate_patterns(exercise)
        assert [(p.pattern, p.points) for p in patterns] == [("define.*:", 100)]


class TestAnalyzers:
    def test_difficulty_regression_is_flagged(self, make_exercise):
        exercises = [
            make_exercise(id="a", difficulty="advanced"),
            make_exercise(id="b", difficulty="beginner"),
        ]
        analysis = DifficultyProgressionAnalyzer().analyze(exercises)
        assert analysis["progression"] == ["advanced", "beginner"]
        assert analysis["issues"] == ["Exercise 2 has difficulty regression"]

    def test_one_step_down_is_allowed(self, make_exercise):
        exercises = [
            make_exercise(id="a", difficulty="intermediate"),
            make_exercise(id="b", difficulty="beginner"),
        ]
        assert DifficultyProgressionAnalyzer().analyze(exercises)["issues"] == []

    def test_concept_coverage_reports_gaps(self, make_exercise):
        exercises = [
            make_exercise(id="a", concepts=["syntax", "literals"]),
            make_exercise(id="b", concepts=["syntax"]),
        ]
        analysis = ConceptCoverageAnalyzer(["syntax", "functions"]).analyze(exercises)
        assert analysis["frequency"] == {"syntax": 2, "literals": 1}
        assert analysis["progression"]["syntax"] == {
            "first": 0,
            "last": 1,
            "exercises": ["a", "b"],
        }
        assert analysis["gaps"] == ["functions"]


class TestContentProcessor:
    """Tests for the full processing pass."""

    def test_weak_exercise_is_improved(self, make_exercise, fixed_clock):
        exercise = _weak(make_exercise)
        result = ContentProcessor(clock=fixed_clock).process([exercise])

        assert result.enhanced == [exercise.id]
        processed = result.processed[0]
        assert len(processed.content.hints) == 5
        assert processed.validation.patterns
        assert processed.metadata.quality_score is not None

    def test_good_exercise_is_not_improved(self, sample_exercise, fixed_clock):
        result = ContentProcessor(clock=fixed_clock).process([sample_exercise])
        assert result.enhanced == []
        assert result.processed[0].content.hints == sample_exercise.content.hints
        assert result.processed[0].metadata.quality_score == 100

    def test_existing_patterns_are_kept(self, make_exercise, fixed_clock):
        exercise = _weak(
            make_exercise,
            validation={"strategy": "pattern-match", "patterns": [{"pattern": "x"}]},
        )
        processed = ContentProcessor(clock=fixed_clock).process([exercise]).processed[0]
        assert [p.pattern for p in processed.validation.patterns] == ["x"]

    def test_failure_is_isolated_per_exercise(self, make_exercise, fixed_clock):
        processor = ContentProcessor(clock=fixed_clock)
        processor.enhancers.insert(0, FailingEnhancer("bad"))
        result = processor.process([make_exercise(id="good"), make_exercise(id="bad")])

        assert [e.id for e in result.processed] == ["good"]
        assert [(f.exercise_id, f.phase) for f in result.failed] == [("bad", "enhance")]
        assert result.failed[0].errors == ["cannot enhance"]

    def test_summary(self, make_exercise, fixed_clock):
        processor = ContentProcessor(clock=fixed_clock)
        processor.enhancers.insert(0, FailingEnhancer("bad"))
        result = processor.process([make_exercise(id="good"), make_exercise(id="bad")])
        summary = result.analytics["summary"]
        assert summary["total"] == 2
        assert summary["processed"] == 1
        assert summary["failed"] == 1
        assert summary["success_rate"] == 50.0
        assert summary["failures_by_phase"] == {"enhance": 1}

    def test_analytics_are_keyed_by_analyzer(self, sample_exercise, fixed_clock):
        result = ContentProcessor(clock=fixed_clock).process([sample_exercise])
        assert {"difficulty_progression", "concept_coverage", "summary"} <= set(
            result.analytics
        )

    def test_improvement_threshold_is_configurable(self, make_exercise, fixed_clock):
        exercise = _weak(make_exercise)
        config = ProcessorConfig(improvement_threshold=0)
        result = ContentProcessor(config, clock=fixed_clock).process([exercise])
        assert result.enhanced == []

    def test_log_entries_use_clock(self, sample_exercise, fixed_clock):
        result = ContentProcessor(clock=fixed_clock).process([sample_exercise])
        assert result.log
        assert all(entry.timestamp == fixed_clock() for entry in result.log)

    def test_difficulty_is_unchanged(self, make_exercise, fixed_clock):
        exercise = _weak(make_exercise, difficulty="expert")
        processed = ContentProcessor(clock=fixed_clock).process([exercise]).processed[0]
        assert processed.difficulty == Difficulty.EXPERT
