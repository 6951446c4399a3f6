import pytest

from livequiz.errors import PersistenceError
from livequiz.extensions import db
from livequiz.models import SecurityViolation
from livequiz.services import AntiCheatMonitor, DataAccess, ViolationService


@pytest.fixture
def service(settings):
    return ViolationService(settings)


@pytest.fixture
def game(make_game):
    return make_game(players=('Alice', 'Bob', 'Cara'))


def report(service, session_id, participant_id, violation_type, times):
    count = None
    for _ in range(times):
        count = service.record(session_id, participant_id, violation_type)
    return count


def test_repeated_reports_collapse_into_one_counter(service, game):
    record, (alice, _, _) = game

    assert report(service, record.id, alice.id, 'tab_switch', 7) == 7

    rows = SecurityViolation.query.filter_by(
        session_id=record.id, participant_id=alice.id, violation_type='tab_switch'
    ).all()
    assert len(rows) == 1
    assert rows[0].violation_count == 7


def test_counters_are_per_type(service, game):
    record, (alice, _, _) = game
    report(service, record.id, alice.id, 'tab_switch', 2)
    report(service, record.id, alice.id, 'copy_paste', 3)

    counts = {
        row.violation_type: row.violation_count
        for row in SecurityViolation.query.filter_by(participant_id=alice.id)
    }
    assert counts == {'tab_switch': 2, 'copy_paste': 3}


@pytest.mark.parametrize('times, severity', [
    (1, 'low'),
    (4, 'low'),
    (5, 'medium'),
    (9, 'medium'),
    (10, 'high'),
])
def test_row_severity_follows_its_count(service, game, times, severity):
    record, (alice, _, _) = game
    report(service, record.id, alice.id, 'right_click', times)

    row = SecurityViolation.query.filter_by(participant_id=alice.id).one()
    assert row.severity == severity


@pytest.mark.parametrize('total, risk', [
    (0, None),
    (4, None),
    (5, 'medium'),
    (9, 'medium'),
    (10, 'high'),
    (14, 'high'),
    (15, 'severe'),
    (40, 'severe'),
])
def test_risk_classification_boundaries(service, total, risk):
    assert service.classify_risk(total) == risk


def test_flagged_players_report(service, game):
    record, (alice, bob, cara) = game
    report(service, record.id, alice.id, 'tab_switch', 3)
    report(service, record.id, alice.id, 'copy_paste', 3)
    report(service, record.id, bob.id, 'tab_switch', 12)
    report(service, record.id, cara.id, 'dev_tools', 4)

    flagged = service.flagged_players(record.id)

    assert [p['participant']['nickname'] for p in flagged] == ['Bob', 'Alice']
    assert [p['total_violations'] for p in flagged] == [12, 6]
    assert [p['risk_level'] for p in flagged] == ['high', 'medium']
    assert sorted(v['violation_type'] for v in flagged[1]['violations']) == ['copy_paste', 'tab_switch']


def test_flagged_players_empty_for_clean_session(service, game):
    record, _ = game
    assert service.flagged_players(record.id) == []


def test_high_severity_view_keeps_worst_row_per_player(service, game):
    record, (alice, bob, cara) = game
    report(service, record.id, alice.id, 'tab_switch', 10)
    report(service, record.id, alice.id, 'copy_paste', 12)
    report(service, record.id, bob.id, 'tab_switch', 9)
    report(service, record.id, cara.id, 'dev_tools', 11)

    rows = service.high_severity_violations(record.id)

    assert [(r['nickname'], r['violation_type'], r['violation_count']) for r in rows] == [
        ('Alice', 'copy_paste', 12),
        ('Cara', 'dev_tools', 11),
    ]


def test_unknown_violation_type_is_dropped(service, game):
    record, (alice, _, _) = game

    assert service.record(record.id, alice.id, 'telepathy') is None
    assert SecurityViolation.query.count() == 0


def test_store_failure_is_logged_not_raised(service, game, monkeypatch):
    record, (alice, _, _) = game

    def broken(*args, **kwargs):
        raise PersistenceError('database unavailable')

    monkeypatch.setattr(DataAccess, 'increment_violation', broken)

    assert service.record(record.id, alice.id, 'tab_switch') is None


def test_monitor_reports_reach_the_aggregator(service, game):
    record, (alice, _, _) = game
    monitor = AntiCheatMonitor(service.reporter_for(record.id, alice.id))
    monitor.enable()

    monitor.handle_signal({'type': 'blur'})
    monitor.handle_signal({'type': 'visibilitychange', 'hidden': True})

    row = SecurityViolation.query.filter_by(participant_id=alice.id).one()
    assert row.violation_type == 'tab_switch'
    assert row.violation_count == 2


def test_engine_monitor_only_reports_during_questions(make_game, make_engine):
    record, (alice, _) = make_game()
    engine = make_engine(record.id, alice.id)
    engine.start()

    engine.monitor.handle_signal({'type': 'contextmenu'})
    engine.submit_answer(0)
    engine.monitor.handle_signal({'type': 'contextmenu'})

    row = SecurityViolation.query.filter_by(participant_id=alice.id).one()
    assert row.violation_count == 1


def test_store_error_during_counter_update_is_logged_not_raised(service, game):
    record, (alice, _, _) = game
    db.session.execute(db.text('DROP TABLE security_violations'))
    db.session.commit()

    assert service.record(record.id, alice.id, 'tab_switch') is None

    # Session was rolled back and stays usable
    assert DataAccess.get_participant(alice.id).nickname == 'Alice'


def test_update_failure_surfaces_as_persistence_error(game):
    record, (alice, _, _) = game
    db.session.execute(db.text('DROP TABLE security_violations'))
    db.session.commit()

    with pytest.raises(PersistenceError):
        DataAccess.increment_violation(record.id, alice.id, 'tab_switch', 5, 10)
