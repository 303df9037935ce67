"""Shared pytest fixtures for the exercise pipeline test suite."""

import copy
import json
import pytest
from datetime import datetime, timezone

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import Exercise
from storage import init_schema

DATA_DIR = Path(__file__).parent.parent / "data"

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

SAMPLE_DOCUMENT = {
    "id": "cql-basics-1",
    "version": "1.0.0",
    "title": "Inequality Operators",
    "description": "Fix the inequality and comparison operators",
    "difficulty": "beginner",
    "estimatedTime": 10,
    "prerequisites": [],
    "concepts": ["operators", "comparisons"],
    "tags": ["operators"],
    "type": "practice",
    "content": {
        "instructions": (
            "CQL uses != for inequality and <= for less-or-equal. "
            "Fix the operators in the editor so that every definition compiles.\n\n"
            "```cql\ndefine \"Check\": 4 != 5\n```\n\n![operators](operators.png)"
        ),
        "hints": [
            {"level": 1, "text": "Look at the inequality operator."},
            {"level": 2, "text": "CQL does not support <>."},
            {"level": 3, "text": "Use != instead.", "code": "4 != 5"},
        ],
    },
    "files": [
        {
            "name": "main.cql",
            "template": "define \"Inequality\": 4 <> 5",
            "solution": "define \"Inequality\": 4 != 5",
        }
    ],
    "validation": {
        "strategy": "pattern-match",
        "patterns": [
            {
                "pattern": "!=",
                "description": "Uses the != operator",
                "required": True,
                "points": 60,
            },
            {
                "pattern": "define\\s+\"Inequality\"",
                "description": "Keeps the definition name",
                "points": 40,
            },
        ],
        "passingScore": 70,
    },
    "feedback": {
        "success": "Well done!",
        "failure": "Try again.",
        "commonErrors": [
            {
                "pattern": "<>",
                "explanation": "CQL uses != for inequality, not <>.",
                "suggestion": "Replace <> with !=.",
            }
        ],
    },
}


@pytest.fixture
def sample_document() -> dict:
    """A structurally valid, high-quality exercise document."""
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def sample_exercise(sample_document) -> Exercise:
    return Exercise.model_validate(sample_document)


@pytest.fixture
def make_exercise(sample_document):
    """Factory for exercises that differ from the sample by a few fields."""

    def _make(**updates) -> Exercise:
        document = copy.deepcopy(sample_document)
        document.update(updates)
        return Exercise.model_validate(document)

    return _make


@pytest.fixture
def legacy_records() -> list[dict]:
    """The bundled legacy store records."""
    with open(DATA_DIR / "legacy_exercises.json") as f:
        return json.load(f)


@pytest.fixture
def fixed_clock():
    """A clock that always returns the same instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def test_db_path(tmp_path) -> Path:
    """Create a temporary database path for testing."""
    db_path = tmp_path / "test_catalog.db"
    init_schema(db_path)
    return db_path
