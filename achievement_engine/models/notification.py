from typing import Any

import pendulum

from achievement_engine.models.base import BaseModel


class NotificationModel(BaseModel):
    '''In-app notifications shown to a user.'''

    table = 'notifications'

    @classmethod
    def create_in_app(
        cls,
        recipient_user_id: int,
        notification_type: str,
        title: str,
        message: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        return cls.create(
            {
                'recipient_user_id': recipient_user_id,
                'notification_type': notification_type,
                'title': title,
                'message': message,
                'payload': payload,
                'sent_at': pendulum.now('UTC'),
            }
        )
