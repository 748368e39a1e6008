import logging
import os
from typing import Optional

import requests

from achievement_engine.achievements.events import AchievementUnlockedEvent
from achievement_engine.models.notification import NotificationModel
from achievement_engine.utils.constants import (
    ACHIEVEMENT_NOTIFICATION_TITLE,
    ACHIEVEMENT_NOTIFICATION_TYPE,
    DEFAULT_WEBHOOK_TIMEOUT,
)
from achievement_engine.utils.env import get_float

logger = logging.getLogger(__name__)


def achievement_message(event: AchievementUnlockedEvent) -> str:
    return (
        f"You unlocked '{event.achievement_name}' "
        f'and earned {event.points_awarded} points!'
    )


def post_webhook(
    event: AchievementUnlockedEvent, url: Optional[str] = None
) -> dict:
    '''POST the unlock event to NOTIFICATION_WEBHOOK_URL when one is set.'''
    url = url or os.getenv('NOTIFICATION_WEBHOOK_URL')
    if not url:
        return {'ok': False, 'error': 'NO_WEBHOOK_URL'}
    timeout = get_float('NOTIFICATION_WEBHOOK_TIMEOUT', DEFAULT_WEBHOOK_TIMEOUT)
    try:
        response = requests.post(url, json=event.to_dict(), timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f'Achievement webhook failed for user {event.user_id}: {e}')
        return {'ok': False, 'error': str(e)}
    return {'ok': True, 'status': response.status_code}


class NotificationService:
    '''Stores the in-app notification, then mirrors it to the webhook.'''

    def achievement_unlocked(self, event: AchievementUnlockedEvent) -> None:
        logger.info(
            f'Sending achievement notification to user {event.user_id}: '
            f'{event.achievement_name}'
        )
        NotificationModel.create_in_app(
            recipient_user_id=event.user_id,
            notification_type=ACHIEVEMENT_NOTIFICATION_TYPE,
            title=ACHIEVEMENT_NOTIFICATION_TITLE,
            message=achievement_message(event),
            payload=event.to_dict(),
        )
        post_webhook(event)
