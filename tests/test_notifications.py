import pytest

from livequiz.services.notifications import (
    EVENT_INSERT, EVENT_UPDATE, NotificationFeed
)


@pytest.fixture
def notifications():
    return NotificationFeed()


def test_delivery_is_filtered_by_table_and_predicate(notifications):
    received = []
    notifications.subscribe('participants', {'session_id': 1}, received.append)

    notifications.publish('participants', EVENT_INSERT, {'id': 1, 'session_id': 1})
    notifications.publish('participants', EVENT_INSERT, {'id': 2, 'session_id': 2})
    notifications.publish('game_sessions', EVENT_UPDATE, {'id': 1, 'session_id': 1})

    assert [(e.table, e.type, e.new['id']) for e in received] == [('participants', EVENT_INSERT, 1)]


def test_callable_predicate(notifications):
    received = []
    notifications.subscribe('participants', lambda row: row['score'] > 100, received.append)

    notifications.publish('participants', EVENT_UPDATE, {'id': 1, 'score': 50})
    notifications.publish('participants', EVENT_UPDATE, {'id': 1, 'score': 150})

    assert [e.new['score'] for e in received] == [150]


def test_unsubscribe_is_idempotent_and_immediate(notifications):
    received = []
    handle = notifications.subscribe('answers', None, received.append)

    notifications.unsubscribe(handle)
    notifications.unsubscribe(handle)
    notifications.unsubscribe(None)
    notifications.publish('answers', EVENT_INSERT, {'id': 1})

    assert received == []
    assert notifications.subscriber_count() == 0


def test_unsubscribe_during_delivery_stops_later_callbacks(notifications):
    received = []
    handles = {}

    def first(event):
        received.append('first')
        notifications.unsubscribe(handles['second'])

    handles['first'] = notifications.subscribe('answers', None, first)
    handles['second'] = notifications.subscribe('answers', None, lambda e: received.append('second'))

    notifications.publish('answers', EVENT_INSERT, {'id': 1})

    assert received == ['first']


def test_failing_subscriber_does_not_block_others(notifications):
    received = []

    def broken(event):
        raise RuntimeError('boom')

    notifications.subscribe('answers', None, broken)
    notifications.subscribe('answers', None, received.append)

    notifications.publish('answers', EVENT_INSERT, {'id': 1})

    assert len(received) == 1


def test_emitter_sees_every_event(notifications):
    emitted = []
    notifications.set_emitter(emitted.append)

    notifications.publish('participants', EVENT_INSERT, {'id': 1})

    assert [e.table for e in emitted] == ['participants']


def test_subscriber_count_per_table(notifications):
    notifications.subscribe('participants', None, lambda e: None)
    notifications.subscribe('game_sessions', None, lambda e: None)

    assert notifications.subscriber_count('participants') == 1
    assert notifications.subscriber_count() == 2

    notifications.clear()
    assert notifications.subscriber_count() == 0
