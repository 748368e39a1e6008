import json

import pytest

from achievement_engine.achievements.rules.schema import (
    CompositeCondition,
    ExerciseCondition,
    RuleMetadata,
    RuleSchema,
    RuleSchemaError,
    StreakCondition,
    condition_from_dict,
    parse_rule_schema,
)


def _rule_json(**overrides) -> str:
    data = {
        'version': '1.0',
        'ruleType': 'EXERCISE_COMPLETION',
        'conditions': [
            {
                'conditionType': 'EXERCISE',
                'operator': 'AND',
                'priority': 1,
                'requiredCount': 10,
                'difficulty': 'hard',
                'learningPointIds': [3, 4],
                'minimumAccuracy': 80,
            }
        ],
        'metadata': {'category': 'auto-migrated', 'tags': ['practice']},
    }
    data.update(overrides)
    return json.dumps(data)


def test_parse_exercise_rule():
    rule = parse_rule_schema(_rule_json())

    assert rule.version == '1.0'
    assert rule.rule_type == 'EXERCISE_COMPLETION'
    assert rule.conditions == (
        ExerciseCondition(
            required_count=10,
            difficulty='hard',
            learning_point_ids=(3, 4),
            minimum_accuracy=80.0,
            combinator='AND',
            priority=1,
        ),
    )
    assert rule.metadata is not None
    assert rule.metadata.category == 'auto-migrated'
    assert rule.metadata.tags == ('practice',)
    assert not rule.requires_manual_migration


def test_serialized_rule_parses_back_to_same_rule():
    rule = RuleSchema(
        '1.0',
        'MIXED',
        (
            StreakCondition(required_streak_length=5, priority=2),
            CompositeCondition(
                sub_conditions=(ExerciseCondition(required_count=3),),
                logical_operator='ANY',
                combinator='OR',
            ),
        ),
        RuleMetadata(description='mix', custom_properties={'a': 1}),
    )

    assert parse_rule_schema(rule.to_json()) == rule


def test_to_json_is_stable_and_camel_case():
    rule = parse_rule_schema(_rule_json())
    text = rule.to_json()

    assert text == parse_rule_schema(text).to_json()
    data = json.loads(text)
    assert data['ruleType'] == 'EXERCISE_COMPLETION'
    assert data['conditions'][0]['requiredCount'] == 10
    assert data['conditions'][0]['conditionType'] == 'EXERCISE'
    assert 'timeFrameDays' not in data['conditions'][0]


def test_combinator_alias_accepted():
    condition = condition_from_dict(
        {'conditionType': 'STREAK', 'combinator': 'or', 'requiredStreakLength': 3}
    )
    assert condition == StreakCondition(required_streak_length=3, combinator='OR')


def test_minor_versions_accepted():
    assert parse_rule_schema(_rule_json(version='1.7')).version == '1.7'


@pytest.mark.parametrize(
    'text',
    [
        'complete_10_exercises_hard',
        '',
        '[]',
        _rule_json(version='2.0'),
        _rule_json(ruleType=''),
        _rule_json(conditions={'conditionType': 'EXERCISE'}),
        _rule_json(conditions=[{'conditionType': 'MAGIC'}]),
        _rule_json(conditions=[{'conditionType': 'EXERCISE'}]),
        _rule_json(conditions=[{'conditionType': 'EXERCISE', 'requiredCount': 'ten'}]),
        _rule_json(conditions=[{'conditionType': 'COMPOSITE'}]),
        _rule_json(
            conditions=[
                {'conditionType': 'STREAK', 'requiredStreakLength': 2, 'operator': 'XOR'}
            ]
        ),
        _rule_json(metadata={'tags': 'not-a-list'}),
    ],
)
def test_invalid_rules_rejected(text):
    with pytest.raises(RuleSchemaError):
        parse_rule_schema(text)


def test_schema_error_is_value_error():
    assert issubclass(RuleSchemaError, ValueError)


def test_nested_composite_parsed():
    rule = parse_rule_schema(
        _rule_json(
            conditions=[
                {
                    'conditionType': 'COMPOSITE',
                    'logicalOperator': 'none',
                    'subConditions': [
                        {'conditionType': 'TIME', 'maxTimeSeconds': 60},
                        {
                            'conditionType': 'COMPOSITE',
                            'subConditions': [
                                {'conditionType': 'PERFORMANCE', 'minimumScore': 100}
                            ],
                        },
                    ],
                }
            ]
        )
    )
    composite = rule.conditions[0]
    assert isinstance(composite, CompositeCondition)
    assert composite.logical_operator == 'NONE'
    inner = composite.sub_conditions[1]
    assert isinstance(inner, CompositeCondition)
    assert inner.logical_operator == 'ALL'


def _nested_composite(levels: int) -> dict:
    condition = {'conditionType': 'EXERCISE', 'requiredCount': 1}
    for _ in range(levels):
        condition = {'conditionType': 'COMPOSITE', 'subConditions': [condition]}
    return condition


def test_composite_nesting_limit():
    rule = parse_rule_schema(_rule_json(conditions=[_nested_composite(16)]))
    assert isinstance(rule.conditions[0], CompositeCondition)

    with pytest.raises(RuleSchemaError):
        parse_rule_schema(_rule_json(conditions=[_nested_composite(17)]))


def test_runaway_nesting_is_schema_error():
    with pytest.raises(RuleSchemaError):
        parse_rule_schema(_rule_json(conditions=[_nested_composite(400)]))
    with pytest.raises(RuleSchemaError):
        parse_rule_schema('[' * 100000 + ']' * 100000)
