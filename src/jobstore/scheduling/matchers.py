"""Group matchers for bulk pause/resume and key enumeration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StringOperator(str, Enum):
    EQUALS = "EQUALS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    CONTAINS = "CONTAINS"
    ANYTHING = "ANYTHING"

    def evaluate(self, value: str, compare_to: str) -> bool:
        if self is StringOperator.EQUALS:
            return value == compare_to
        if self is StringOperator.STARTS_WITH:
            return value.startswith(compare_to)
        if self is StringOperator.ENDS_WITH:
            return value.endswith(compare_to)
        if self is StringOperator.CONTAINS:
            return compare_to in value
        return True


@dataclass(frozen=True)
class GroupMatcher:
    """Matches job or trigger groups by name.

    Example:
        >>> GroupMatcher.group_starts_with("reports-").matches("reports-daily")
        True
    """

    operator: StringOperator
    compare_to: str = ""

    def matches(self, group: str) -> bool:
        return self.operator.evaluate(group, self.compare_to)

    @classmethod
    def group_equals(cls, group: str) -> GroupMatcher:
        return cls(StringOperator.EQUALS, group)

    @classmethod
    def group_starts_with(cls, prefix: str) -> GroupMatcher:
        return cls(StringOperator.STARTS_WITH, prefix)

    @classmethod
    def group_ends_with(cls, suffix: str) -> GroupMatcher:
        return cls(StringOperator.ENDS_WITH, suffix)

    @classmethod
    def group_contains(cls, fragment: str) -> GroupMatcher:
        return cls(StringOperator.CONTAINS, fragment)

    @classmethod
    def any_group(cls) -> GroupMatcher:
        return cls(StringOperator.ANYTHING)
