'''Structured achievement rules.

A rule is a versioned list of typed conditions. The JSON wire format uses
camelCase keys and tags every condition with ``conditionType``:

    {
        "version": "1.0",
        "ruleType": "EXERCISE_COMPLETION",
        "conditions": [
            {"conditionType": "EXERCISE", "operator": "AND", "priority": 1,
             "requiredCount": 10, "difficulty": "hard"}
        ],
        "metadata": {"category": "auto-migrated"}
    }
'''

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Optional, Union

from achievement_engine.utils.constants import (
    COMBINATORS,
    COMPOSITE,
    EXERCISE,
    LOGICAL_OPERATORS,
    MAX_COMPOSITE_DEPTH,
    PERFORMANCE,
    RULE_REQUIRES_MANUAL_MIGRATION,
    STREAK,
    TIME,
)

_VERSION_PATTERN = re.compile(r'^1\.[0-9]+$')


class RuleSchemaError(ValueError):
    '''Raised when rule text is not a valid structured rule.'''


@dataclass(frozen=True)
class ExerciseCondition:
    required_count: int
    # Carried for authors; the statistics source does not filter by difficulty yet
    difficulty: Optional[str] = None
    learning_point_ids: tuple[int, ...] = ()
    exercise_type_ids: tuple[int, ...] = ()
    time_frame_days: Optional[int] = None
    minimum_accuracy: Optional[float] = None
    combinator: str = 'AND'
    priority: Optional[int] = None

    condition_type: ClassVar[str] = EXERCISE


@dataclass(frozen=True)
class StreakCondition:
    required_streak_length: int
    streak_type: str = 'daily'
    minimum_activity_per_day: Optional[int] = None
    combinator: str = 'AND'
    priority: Optional[int] = None

    condition_type: ClassVar[str] = STREAK


@dataclass(frozen=True)
class TimeCondition:
    max_time_seconds: Optional[int] = None
    min_time_seconds: Optional[int] = None
    time_type: Optional[str] = None
    combinator: str = 'AND'
    priority: Optional[int] = None

    condition_type: ClassVar[str] = TIME


@dataclass(frozen=True)
class PerformanceCondition:
    minimum_score: Optional[float] = None
    minimum_average: Optional[float] = None
    minimum_attempts: Optional[int] = None
    performance_type: Optional[str] = None
    combinator: str = 'AND'
    priority: Optional[int] = None

    condition_type: ClassVar[str] = PERFORMANCE


@dataclass(frozen=True)
class CompositeCondition:
    sub_conditions: tuple['RuleCondition', ...]
    logical_operator: str = 'ALL'
    combinator: str = 'AND'
    priority: Optional[int] = None

    condition_type: ClassVar[str] = COMPOSITE


RuleCondition = Union[
    ExerciseCondition,
    StreakCondition,
    TimeCondition,
    PerformanceCondition,
    CompositeCondition,
]


@dataclass(frozen=True)
class RuleMetadata:
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[int] = None
    tags: tuple[str, ...] = ()
    custom_properties: dict[str, Any] = field(default_factory=dict)
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None


@dataclass(frozen=True)
class RuleSchema:
    version: str
    rule_type: str
    conditions: tuple[RuleCondition, ...]
    metadata: Optional[RuleMetadata] = None

    @property
    def requires_manual_migration(self) -> bool:
        return self.rule_type == RULE_REQUIRES_MANUAL_MIGRATION

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            'version': self.version,
            'ruleType': self.rule_type,
            'conditions': [condition_to_dict(c) for c in self.conditions],
        }
        if self.metadata is not None:
            data['metadata'] = _metadata_to_dict(self.metadata)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)

    @classmethod
    def from_dict(cls, data: Any) -> 'RuleSchema':
        if not isinstance(data, dict):
            raise RuleSchemaError('Rule must be a JSON object')

        version = data.get('version')
        if not isinstance(version, str) or not _VERSION_PATTERN.match(version):
            raise RuleSchemaError(f'Unsupported rule version: {version!r}')

        rule_type = data.get('ruleType')
        if not isinstance(rule_type, str) or not rule_type.strip():
            raise RuleSchemaError('ruleType is required')

        raw_conditions = data.get('conditions')
        if not isinstance(raw_conditions, list):
            raise RuleSchemaError('conditions must be a list')

        metadata = data.get('metadata')
        return cls(
            version=version,
            rule_type=rule_type,
            conditions=tuple(condition_from_dict(c) for c in raw_conditions),
            metadata=_metadata_from_dict(metadata) if metadata is not None else None,
        )


def parse_rule_schema(text: str) -> RuleSchema:
    '''Deserialize structured rule JSON; raise RuleSchemaError otherwise.'''
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise RuleSchemaError(f'Rule is not valid JSON: {e}') from e
    except RecursionError as e:
        raise RuleSchemaError('Rule JSON is nested too deeply') from e
    try:
        return RuleSchema.from_dict(data)
    except RecursionError as e:
        raise RuleSchemaError('Rule is nested too deeply') from e


# --- field coercion ---------------------------------------------------------


def _int(data: dict, key: str, required: bool = False) -> Optional[int]:
    value = data.get(key)
    if value is None:
        if required:
            raise RuleSchemaError(f'{key} is required')
        return None
    if isinstance(value, bool):
        raise RuleSchemaError(f'{key} must be an integer')
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise RuleSchemaError(f'{key} must be an integer')
    return value


def _float(data: dict, key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleSchemaError(f'{key} must be a number')
    return float(value)


def _str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RuleSchemaError(f'{key} must be a string')
    return value


def _int_tuple(data: dict, key: str) -> tuple[int, ...]:
    value = data.get(key)
    if value is None:
        return ()
    if not isinstance(value, list):
        raise RuleSchemaError(f'{key} must be a list')
    return tuple(_int({key: v}, key, required=True) for v in value)  # type: ignore[misc]


def _choice(data: dict, key: str, choices: tuple[str, ...], default: str) -> str:
    value = _str(data, key)
    if value is None:
        return default
    value = value.upper()
    if value not in choices:
        raise RuleSchemaError(f'{key} must be one of {", ".join(choices)}')
    return value


def _common(data: dict) -> dict[str, Any]:
    # "combinator" is accepted as an alias of the wire name "operator"
    source = dict(data)
    if 'operator' not in source and 'combinator' in source:
        source['operator'] = source['combinator']
    return {
        'combinator': _choice(source, 'operator', COMBINATORS, 'AND'),
        'priority': _int(data, 'priority'),
    }


# --- conditions -------------------------------------------------------------


def _exercise_from_dict(data: dict) -> ExerciseCondition:
    return ExerciseCondition(
        required_count=_int(data, 'requiredCount', required=True),  # type: ignore[arg-type]
        difficulty=_str(data, 'difficulty'),
        learning_point_ids=_int_tuple(data, 'learningPointIds'),
        exercise_type_ids=_int_tuple(data, 'exerciseTypeIds'),
        time_frame_days=_int(data, 'timeFrameDays'),
        minimum_accuracy=_float(data, 'minimumAccuracy'),
        **_common(data),
    )


def _streak_from_dict(data: dict) -> StreakCondition:
    return StreakCondition(
        required_streak_length=_int(  # type: ignore[arg-type]
            data, 'requiredStreakLength', required=True
        ),
        streak_type=_str(data, 'streakType') or 'daily',
        minimum_activity_per_day=_int(data, 'minimumActivityPerDay'),
        **_common(data),
    )


def _time_from_dict(data: dict) -> TimeCondition:
    return TimeCondition(
        max_time_seconds=_int(data, 'maxTimeSeconds'),
        min_time_seconds=_int(data, 'minTimeSeconds'),
        time_type=_str(data, 'timeType'),
        **_common(data),
    )


def _performance_from_dict(data: dict) -> PerformanceCondition:
    return PerformanceCondition(
        minimum_score=_float(data, 'minimumScore'),
        minimum_average=_float(data, 'minimumAverage'),
        minimum_attempts=_int(data, 'minimumAttempts'),
        performance_type=_str(data, 'performanceType'),
        **_common(data),
    )


def _composite_from_dict(data: dict, depth: int = 0) -> CompositeCondition:
    if depth >= MAX_COMPOSITE_DEPTH:
        raise RuleSchemaError(
            f'COMPOSITE conditions nest deeper than {MAX_COMPOSITE_DEPTH} levels'
        )
    children = data.get('subConditions')
    if not isinstance(children, list):
        raise RuleSchemaError('subConditions is required')
    return CompositeCondition(
        sub_conditions=tuple(condition_from_dict(c, depth + 1) for c in children),
        logical_operator=_choice(data, 'logicalOperator', LOGICAL_OPERATORS, 'ALL'),
        **_common(data),
    )


_CONDITION_PARSERS: dict[str, Callable[[dict], RuleCondition]] = {
    EXERCISE: _exercise_from_dict,
    STREAK: _streak_from_dict,
    TIME: _time_from_dict,
    PERFORMANCE: _performance_from_dict,
}


def condition_from_dict(data: Any, depth: int = 0) -> RuleCondition:
    '''Parse one condition; depth counts the COMPOSITE conditions around it.'''
    if not isinstance(data, dict):
        raise RuleSchemaError('Condition must be a JSON object')
    condition_type = data.get('conditionType')
    if condition_type == COMPOSITE:
        return _composite_from_dict(data, depth)
    parser = _CONDITION_PARSERS.get(condition_type)  # type: ignore[arg-type]
    if parser is None:
        raise RuleSchemaError(f'Unknown conditionType: {condition_type!r}')
    return parser(data)


def condition_to_dict(condition: RuleCondition) -> dict[str, Any]:
    data: dict[str, Any] = {
        'conditionType': condition.condition_type,
        'operator': condition.combinator,
    }
    if condition.priority is not None:
        data['priority'] = condition.priority

    if isinstance(condition, ExerciseCondition):
        fields = {
            'requiredCount': condition.required_count,
            'difficulty': condition.difficulty,
            'learningPointIds': list(condition.learning_point_ids) or None,
            'exerciseTypeIds': list(condition.exercise_type_ids) or None,
            'timeFrameDays': condition.time_frame_days,
            'minimumAccuracy': condition.minimum_accuracy,
        }
    elif isinstance(condition, StreakCondition):
        fields = {
            'requiredStreakLength': condition.required_streak_length,
            'streakType': condition.streak_type,
            'minimumActivityPerDay': condition.minimum_activity_per_day,
        }
    elif isinstance(condition, TimeCondition):
        fields = {
            'maxTimeSeconds': condition.max_time_seconds,
            'minTimeSeconds': condition.min_time_seconds,
            'timeType': condition.time_type,
        }
    elif isinstance(condition, PerformanceCondition):
        fields = {
            'minimumScore': condition.minimum_score,
            'minimumAverage': condition.minimum_average,
            'minimumAttempts': condition.minimum_attempts,
            'performanceType': condition.performance_type,
        }
    elif isinstance(condition, CompositeCondition):
        fields = {
            'subConditions': [condition_to_dict(c) for c in condition.sub_conditions],
            'logicalOperator': condition.logical_operator,
        }
    else:
        raise TypeError(f'Unsupported condition: {type(condition).__name__}')

    data.update({k: v for k, v in fields.items() if v is not None})
    return data


# --- metadata ---------------------------------------------------------------


def _metadata_from_dict(data: Any) -> RuleMetadata:
    if not isinstance(data, dict):
        raise RuleSchemaError('metadata must be a JSON object')
    tags = data.get('tags') or []
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise RuleSchemaError('tags must be a list of strings')
    custom = data.get('customProperties') or {}
    if not isinstance(custom, dict):
        raise RuleSchemaError('customProperties must be a JSON object')
    return RuleMetadata(
        description=_str(data, 'description'),
        category=_str(data, 'category'),
        difficulty=_int(data, 'difficulty'),
        tags=tuple(tags),
        custom_properties=dict(custom),
        created_by=_str(data, 'createdBy'),
        last_modified_by=_str(data, 'lastModifiedBy'),
    )


def _metadata_to_dict(metadata: RuleMetadata) -> dict[str, Any]:
    fields = {
        'description': metadata.description,
        'category': metadata.category,
        'difficulty': metadata.difficulty,
        'tags': list(metadata.tags) or None,
        'customProperties': dict(metadata.custom_properties) or None,
        'createdBy': metadata.created_by,
        'lastModifiedBy': metadata.last_modified_by,
    }
    return {k: v for k, v in fields.items() if v is not None}
