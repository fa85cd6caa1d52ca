"""Ordered extraction rules for heterogeneous provider responses.

Providers disagree on where they put task ids and result URLs. Each adapter
declares an ordered list of named rules; the first rule whose path resolves
to a non-empty value wins. No rule matching is a provider error, not a
reason to keep guessing.
"""

from dataclasses import dataclass
from typing import Any, Sequence, Union

PathElement = Union[str, int]


@dataclass(frozen=True)
class ExtractionRule:
    """A named path into a JSON response, e.g. ("data", "output", 0)."""

    name: str
    path: tuple[PathElement, ...]

    def resolve(self, document: Any) -> Any:
        current = document
        for element in self.path:
            if isinstance(element, int):
                if not isinstance(current, list) or len(current) <= element:
                    return None
                current = current[element]
            else:
                if not isinstance(current, dict):
                    return None
                current = current.get(element)
            if current is None:
                return None
        return current


def rule(dotted: str) -> ExtractionRule:
    """Build a rule from dotted notation; numeric segments index lists ("data.output.0")."""
    path = tuple(int(part) if part.isdigit() else part for part in dotted.split("."))
    return ExtractionRule(name=dotted, path=path)


def extract_first(document: Any, rules: Sequence[ExtractionRule]) -> tuple[str, str] | None:
    """Evaluate rules top to bottom against a response.

    Args:
        document: Parsed JSON response
        rules: Ordered extraction rules

    Returns:
        (rule name, value as string) for the first non-empty match, None if no rule matched
    """
    for extraction_rule in rules:
        value = extraction_rule.resolve(document)
        if value is None or value == "":
            continue
        return extraction_rule.name, str(value)
    return None


RESULT_URL_RULES: tuple[ExtractionRule, ...] = (
    rule("data.resultImageUrl"),
    rule("resultImageUrl"),
    rule("data.result_image_url"),
    rule("result_image_url"),
    rule("data.imageUrl"),
    rule("imageUrl"),
    rule("data.output.0"),
    rule("output.0"),
)

TASK_ID_RULES: tuple[ExtractionRule, ...] = (
    rule("data.taskId"),
    rule("taskId"),
    rule("data.task_id"),
    rule("task_id"),
)
