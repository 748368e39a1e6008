from typing import Any

import pendulum

from achievement_engine.achievements.records import Achievement
from achievement_engine.models.base import BaseModel


class AchievementModel(BaseModel):
    table = 'achievements'

    @classmethod
    def active_achievements(cls) -> list[Achievement]:
        rows = cls.get_many(where='is_active = TRUE', order_by='id ASC')
        return [Achievement.from_row(r) for r in rows]

    @classmethod
    def all_achievements(cls) -> list[Achievement]:
        return [Achievement.from_row(r) for r in cls.get_many(order_by='id ASC')]

    @classmethod
    def update_trigger_rule(cls, achievement_id: int, rule_json: str) -> dict[str, Any]:
        return cls.update(
            achievement_id,
            {'trigger_rule': rule_json, 'updated_at': pendulum.now('UTC')},
        )
