from unittest.mock import MagicMock

import pendulum
import requests

from achievement_engine.achievements.events import AchievementUnlockedEvent
from achievement_engine.services import notifications as notifications_module
from achievement_engine.services.notifications import (
    NotificationService,
    achievement_message,
    post_webhook,
)

EVENT = AchievementUnlockedEvent(
    user_id=4200,
    student_id=42,
    achievement_id=5,
    achievement_name='Hard Worker',
    points_awarded=25,
    event_id='evt-1',
    occurred_at=pendulum.datetime(2026, 10, 19, tz='UTC'),
)


def test_message_names_achievement_and_points():
    assert achievement_message(EVENT) == (
        "You unlocked 'Hard Worker' and earned 25 points!"
    )


def test_service_stores_in_app_notification(monkeypatch):
    created = []
    monkeypatch.setattr(
        notifications_module.NotificationModel,
        'create_in_app',
        lambda **kwargs: created.append(kwargs),
    )
    monkeypatch.delenv('NOTIFICATION_WEBHOOK_URL', raising=False)
    post = MagicMock()
    monkeypatch.setattr(notifications_module.requests, 'post', post)

    NotificationService().achievement_unlocked(EVENT)

    [values] = created
    assert values['recipient_user_id'] == 4200
    assert values['notification_type'] == 'ACHIEVEMENT_UNLOCKED'
    assert values['title'] == 'Achievement unlocked!'
    assert values['payload']['achievementId'] == 5
    post.assert_not_called()


def test_webhook_posts_event(monkeypatch):
    monkeypatch.setenv('NOTIFICATION_WEBHOOK_URL', 'https://hooks.example.test/ach')
    monkeypatch.setenv('NOTIFICATION_WEBHOOK_TIMEOUT', '2.5')
    response = MagicMock(status_code=204)
    post = MagicMock(return_value=response)
    monkeypatch.setattr(notifications_module.requests, 'post', post)

    result = post_webhook(EVENT)

    assert result == {'ok': True, 'status': 204}
    args, kwargs = post.call_args
    assert args == ('https://hooks.example.test/ach',)
    assert kwargs['json']['eventId'] == 'evt-1'
    assert kwargs['timeout'] == 2.5


def test_webhook_failure_is_not_raised(monkeypatch):
    def fail(*a, **k):
        raise requests.ConnectionError('refused')

    monkeypatch.setattr(notifications_module.requests, 'post', fail)

    result = post_webhook(EVENT, url='https://hooks.example.test/ach')

    assert result['ok'] is False
    assert 'refused' in result['error']


def test_webhook_skipped_without_url(monkeypatch):
    monkeypatch.delenv('NOTIFICATION_WEBHOOK_URL', raising=False)
    assert post_webhook(EVENT) == {'ok': False, 'error': 'NO_WEBHOOK_URL'}
