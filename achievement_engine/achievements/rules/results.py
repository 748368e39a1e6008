from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ConditionResult:
    condition_type: str
    passed: bool
    description: str
    actual_values: dict[str, Any] = field(default_factory=dict)
    required_values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failed(cls, condition_type: str, description: str) -> 'ConditionResult':
        return cls(condition_type=condition_type, passed=False, description=description)

    def summary(self) -> dict[str, Any]:
        return {
            'conditionType': self.condition_type,
            'passed': self.passed,
            'description': self.description,
        }


@dataclass(frozen=True)
class EvaluationResult:
    passed: bool
    condition_results: tuple[ConditionResult, ...] = ()
    completion_percentage: float = 0.0
    failure_reason: Optional[str] = None
    rule_type: Optional[str] = None
    context_snapshot: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def error(
        cls, reason: str, context_snapshot: Optional[dict[str, Any]] = None
    ) -> 'EvaluationResult':
        '''Non-passing result for an evaluation that could not complete.'''
        return cls(
            passed=False,
            failure_reason=reason,
            context_snapshot=dict(context_snapshot or {}),
        )
