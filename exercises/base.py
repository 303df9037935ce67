"""Shared text utilities for the exercise pipeline."""

import re

_NON_SLUG = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")
_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")


def slugify(text: str | None) -> str:
    """Turn a title into an exercise id.

    Lowercases, drops everything outside [a-z0-9 -], turns whitespace runs
    into hyphens, collapses repeated hyphens and trims them from both ends.
    Returns an empty string when nothing usable remains.
    """
    if not text:
        return ""
    slug = _NON_SLUG.sub("", text.lower())
    slug = _WHITESPACE.sub("-", slug.strip())
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")


def escape_regex(text: str) -> str:
    """Escape regex metacharacters so the text matches literally."""
    return re.escape(text)


def normalize_code(
    code: str,
    ignore_whitespace: bool = False,
    ignore_case: bool = False,
    ignore_comments: bool = False,
) -> str:
    """Normalize code for exact comparison.

    Steps run in a fixed order: whitespace collapse, lowercasing, then
    comment stripping. Each is applied only when its flag is set.
    """
    normalized = code

    if ignore_whitespace:
        normalized = _WHITESPACE.sub(" ", normalized).strip()

    if ignore_case:
        normalized = normalized.lower()

    if ignore_comments:
        normalized = _LINE_COMMENT.sub("", normalized)
        normalized = _BLOCK_COMMENT.sub("", normalized)

    return normalized


def flatten_content(content: str | list[str] | None, separator: str = " ") -> str:
    """Join legacy content, which may be a string or a list of HTML chunks."""
    if content is None:
        return ""
    if isinstance(content, list):
        return separator.join(content)
    return content


def count_words(text: str) -> int:
    return len([word for word in text.split() if word])


def count_code_lines(templates: list[str]) -> int:
    return sum(len(template.split("\n")) for template in templates)


def unique_id(candidate: str, seen: set[str]) -> str:
    """First of candidate, candidate-2, candidate-3, ... not already in seen."""
    exercise_id = candidate
    suffix = 2
    while exercise_id in seen:
        exercise_id = f"{candidate}-{suffix}"
        suffix += 1
    return exercise_id
