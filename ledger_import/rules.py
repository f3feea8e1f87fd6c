"""Import rules: declarative post-mapping enrichment of candidates.

A rule is a list of conditions over a normalized candidate and a list of
actions to apply when they hold. Rules are data (pydantic models) so they can
be stored next to profiles and loaded from JSON.

Example::

    ImportRule(
        name="Coffee",
        priority=10,
        conditions=[RuleCondition(field="description", operator="contains", value="starbucks")],
        actions=[RuleAction(type="set_category", value="Dining")],
    )
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .logging_setup import get_logger
from .models import CandidateTransaction
from .normalizers import format_amount

logger = get_logger("ledger_import.rules")

AMOUNT_TOLERANCE = Decimal("0.01")

ConditionField = Literal["description", "amount", "account_id", "date"]
Operator = Literal[
    "contains",
    "equals",
    "starts_with",
    "ends_with",
    "greater_than",
    "less_than",
    "between",
    "regex",
]
_ORDERED_OPERATORS = frozenset({"greater_than", "less_than", "between"})


class RuleCondition(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    field: ConditionField
    operator: Operator
    value: str
    value2: str | None = None
    case_sensitive: bool = False

    @model_validator(mode="after")
    def _check_operands(self) -> RuleCondition:
        if self.operator in _ORDERED_OPERATORS and self.field not in ("amount", "date"):
            raise ValueError(f"{self.operator} only applies to amount or date, not {self.field}")
        if self.operator == "between" and self.value2 is None:
            raise ValueError("between needs value2")
        if self.operator == "regex":
            try:
                re.compile(self.value)
            except re.error as exc:
                raise ValueError(f"invalid regex {self.value!r}: {exc}") from exc
        if self.field == "amount" and self.operator in _ORDERED_OPERATORS | {"equals"}:
            for raw in (self.value, self.value2):
                if raw is not None:
                    _decimal(raw)
        if self.field == "date" and self.operator in _ORDERED_OPERATORS | {"equals"}:
            for raw in (self.value, self.value2):
                if raw is not None:
                    date.fromisoformat(raw.strip())
        return self


class RuleAction(BaseModel):
    """What to do with a matching candidate.

    ``modify_description`` uses ``mode``: ``replace`` swaps the whole text,
    ``prepend``/``append`` add ``value``, ``regex`` substitutes ``pattern``
    with ``value``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["set_category", "add_tag", "modify_description", "set_account", "skip"]
    value: str = ""
    mode: Literal["replace", "prepend", "append", "regex"] = "replace"
    pattern: str | None = None

    @model_validator(mode="after")
    def _regex_needs_pattern(self) -> RuleAction:
        if self.type == "modify_description" and self.mode == "regex":
            if not self.pattern:
                raise ValueError("regex mode needs a pattern")
            re.compile(self.pattern)
        return self


class ImportRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    priority: int = 0
    enabled: bool = True
    match_all: bool = True
    conditions: list[RuleCondition] = Field(default_factory=list)
    actions: list[RuleAction] = Field(default_factory=list)

    @field_validator("actions")
    @classmethod
    def _has_actions(cls, v: list[RuleAction]) -> list[RuleAction]:
        if not v:
            raise ValueError("a rule needs at least one action")
        return v


@dataclass(frozen=True, slots=True)
class RuleOutcome:
    candidate: CandidateTransaction
    applied: tuple[str, ...] = ()
    skipped_by: str | None = None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _decimal(raw: str) -> Decimal:
    try:
        value = Decimal(raw.strip().replace(",", ""))
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {raw!r}") from exc
    if not value.is_finite():
        raise ValueError(f"not a finite number: {raw!r}")
    return value


def _text_match(operator: str, subject: str, cond: RuleCondition) -> bool:
    if operator == "regex":
        flags = 0 if cond.case_sensitive else re.IGNORECASE
        return re.search(cond.value, subject, flags) is not None
    needle = cond.value if cond.case_sensitive else cond.value.lower()
    hay = subject if cond.case_sensitive else subject.lower()
    if operator == "contains":
        return needle in hay
    if operator == "equals":
        return hay == needle
    if operator == "starts_with":
        return hay.startswith(needle)
    if operator == "ends_with":
        return hay.endswith(needle)
    return False


def _amount_match(cond: RuleCondition, amount: Decimal) -> bool:
    subject = abs(amount)
    if cond.operator == "equals":
        return abs(subject - abs(_decimal(cond.value))) < AMOUNT_TOLERANCE
    if cond.operator == "greater_than":
        return subject > abs(_decimal(cond.value))
    if cond.operator == "less_than":
        return subject < abs(_decimal(cond.value))
    if cond.operator == "between":
        low, high = sorted((abs(_decimal(cond.value)), abs(_decimal(cond.value2 or "0"))))
        return low <= subject <= high
    return _text_match(cond.operator, format_amount(subject), cond)


def _date_match(cond: RuleCondition, when: date) -> bool:
    if cond.operator in _ORDERED_OPERATORS or cond.operator == "equals":
        ref = date.fromisoformat(cond.value.strip())
        if cond.operator == "equals":
            return when == ref
        if cond.operator == "greater_than":
            return when > ref
        if cond.operator == "less_than":
            return when < ref
        low, high = sorted((ref, date.fromisoformat((cond.value2 or "").strip())))
        return low <= when <= high
    return _text_match(cond.operator, when.isoformat(), cond)


def condition_matches(cond: RuleCondition, candidate: CandidateTransaction) -> bool:
    if cond.field == "amount":
        return _amount_match(cond, candidate.amount)
    if cond.field == "date":
        return _date_match(cond, candidate.date)
    subject = candidate.description if cond.field == "description" else candidate.account_id
    return _text_match(cond.operator, subject or "", cond)


def rule_matches(rule: ImportRule, candidate: CandidateTransaction) -> bool:
    if not rule.enabled or not rule.conditions:
        return False
    results = (condition_matches(c, candidate) for c in rule.conditions)
    return all(results) if rule.match_all else any(results)


def _apply_action(action: RuleAction, candidate: CandidateTransaction) -> CandidateTransaction:
    if action.type == "set_category":
        return replace(candidate, raw_category=action.value or None)
    if action.type == "add_tag":
        if not action.value or action.value in candidate.tags:
            return candidate
        return replace(candidate, tags=candidate.tags + (action.value,))
    if action.type == "set_account":
        return replace(candidate, account_id=action.value)
    if action.type == "modify_description":
        text = candidate.description
        if action.mode == "prepend":
            text = f"{action.value}{text}"
        elif action.mode == "append":
            text = f"{text}{action.value}"
        elif action.mode == "regex":
            text = re.sub(action.pattern or "", action.value, text)
        else:
            text = action.value
        return replace(candidate, description=text)
    return candidate


def order_rules(rules: Iterable[ImportRule]) -> list[ImportRule]:
    """Enabled rules, highest priority first; equal priorities keep input order."""

    return sorted((r for r in rules if r.enabled), key=lambda r: -r.priority)


def apply_rules(candidate: CandidateTransaction, rules: Sequence[ImportRule]) -> RuleOutcome:
    """Run ``rules`` (already ordered) over one candidate.

    A ``skip`` action stops evaluation and marks the candidate as skipped.
    """

    applied: list[str] = []
    current = candidate
    for rule in rules:
        if not rule_matches(rule, current):
            continue
        applied.append(rule.name)
        for action in rule.actions:
            if action.type == "skip":
                logger.debug("row %d skipped by rule %r", candidate.source_row, rule.name)
                return RuleOutcome(candidate=current, applied=tuple(applied), skipped_by=rule.name)
            current = _apply_action(action, current)
    return RuleOutcome(candidate=current, applied=tuple(applied))


__all__ = [
    "AMOUNT_TOLERANCE",
    "ImportRule",
    "RuleAction",
    "RuleCondition",
    "RuleOutcome",
    "apply_rules",
    "condition_matches",
    "order_rules",
    "rule_matches",
]
