import pytest

from livequiz.extensions import db, socketio
from livequiz.models import Question
from livequiz.services import DataAccess, SessionService
from livequiz.services.player_runner import LobbyWatcher, PlayerRunner


@pytest.fixture
def teacher_client(client):
    teacher_id = DataAccess.create_user('Ms. Rivera', 'rivera@example.com', role='teacher')
    with client.session_transaction() as sess:
        sess['user_id'] = teacher_id
        sess['role'] = 'teacher'
    return client


def test_teacher_routes_need_teacher_role(client, make_quiz):
    response = client.post('/teacher/sessions', json={'quiz_id': make_quiz()})
    assert response.status_code == 403


def test_session_lifecycle_over_http(teacher_client, client, make_quiz):
    response = teacher_client.post('/teacher/sessions', json={'quiz_id': make_quiz()})
    assert response.status_code == 201
    created = response.get_json()
    assert created['status'] == 'waiting'

    lookup = client.get(f"/play/sessions/{created['pin'].lower()}")
    assert lookup.status_code == 200
    assert lookup.get_json()['session_id'] == created['id']

    joined = client.post('/play/join', json={'pin': created['pin'], 'nickname': 'Alice'})
    assert joined.status_code == 201
    assert joined.get_json()['participant']['nickname'] == 'Alice'

    started = teacher_client.post(f"/teacher/sessions/{created['id']}/start")
    assert started.status_code == 200
    assert started.get_json()['status'] == 'active'

    roster = teacher_client.get(f"/teacher/sessions/{created['id']}/roster").get_json()
    assert roster['count'] == 1
    assert roster['participants'][0]['nickname'] == 'Alice'

    board = teacher_client.get(f"/teacher/sessions/{created['id']}/leaderboard").get_json()
    assert [e['nickname'] for e in board['leaderboard']] == ['Alice']

    flagged = teacher_client.get(f"/teacher/sessions/{created['id']}/flagged").get_json()
    assert flagged['count'] == 0
    high = teacher_client.get(f"/teacher/sessions/{created['id']}/flagged/high").get_json()
    assert high['count'] == 0

    ended = teacher_client.post(f"/teacher/sessions/{created['id']}/end").get_json()
    assert ended['ended'] is True
    again = teacher_client.post(f"/teacher/sessions/{created['id']}/end").get_json()
    assert again['ended'] is False

    late = client.post('/play/join', json={'pin': created['pin'], 'nickname': 'Bob'})
    assert late.status_code == 400


def test_create_session_errors(teacher_client):
    assert teacher_client.post('/teacher/sessions', json={}).status_code == 400
    assert teacher_client.post('/teacher/sessions', json={'quiz_id': 999}).status_code == 404


def test_start_empty_quiz_conflicts(teacher_client):
    quiz_id = DataAccess.create_quiz('Empty', [])
    created = teacher_client.post('/teacher/sessions', json={'quiz_id': quiz_id}).get_json()

    response = teacher_client.post(f"/teacher/sessions/{created['id']}/start")

    assert response.status_code == 409


def test_unknown_pin_over_http(client):
    assert client.get('/play/sessions/NOPE42').status_code == 404
    response = client.post('/play/join', json={'pin': 'NOPE42', 'nickname': 'Alice'})
    assert response.status_code == 404
    assert 'Game not found' in response.get_json()['error']


def test_user_endpoints(client, make_game, make_engine, play_through):
    ada = DataAccess.create_user('Ada')
    record, (player,) = make_game(players=('Ada',), user_ids=[ada], n_questions=1)
    engine = make_engine(record.id, player.id)
    engine.start()
    play_through(engine, [0])

    badges = client.get(f'/play/users/{ada}/badges').get_json()['badges']
    assert 'First Steps' in [b['badge']['name'] for b in badges]

    stats = client.get(f'/play/users/{ada}/stats').get_json()
    assert stats['games_played'] == 1
    assert stats['total_score'] == 150
    assert stats['badges_earned'] == len(badges)

    history = client.get(f'/play/users/{ada}/history').get_json()['history']
    assert [h['session_score'] for h in history] == [150]

    board = client.get('/play/leaderboard').get_json()['leaderboard']
    assert board[0]['user_name'] == 'Ada'


def test_socket_answer_without_seat_is_rejected(app):
    socket_client = socketio.test_client(app)

    socket_client.emit('submit_answer', {'answer': 1})

    received = socket_client.get_received()
    assert received[0]['name'] == 'answer_rejected'
    assert received[0]['args'][0]['reason'] == 'not_in_game'
    socket_client.disconnect()


def test_socket_join_without_seat_is_rejected(app):
    socket_client = socketio.test_client(app)

    socket_client.emit('join_game', {})

    received = socket_client.get_received()
    assert received[0]['name'] == 'join_error'
    socket_client.disconnect()


def test_socket_watch_needs_teacher(app, client):
    socket_client = socketio.test_client(app, flask_test_client=client)

    socket_client.emit('watch_session', {'session_id': 1})

    received = socket_client.get_received()
    assert received[0]['name'] == 'watch_error'
    socket_client.disconnect()


def test_runner_steps_drive_the_engine(app, make_game, make_engine):
    record, (alice, _) = make_game()
    now = [50.0]
    engine = make_engine(record.id, alice.id, clock=lambda: now[0])
    engine.start()
    runner = PlayerRunner(app, engine)

    runner._countdown_step()
    assert engine.state.time_left == 30

    now[0] = 51.0
    runner._countdown_step()
    assert engine.state.time_left == 29

    engine.submit_answer(0)
    runner._fast_poll_step()
    assert engine.state.question_index == 1
    assert engine.state.state == 'question'

    runner.stop()
    runner.stop()
    assert engine.closed
    assert not runner.running


def test_lobby_watcher_reports_status(app, make_game, settings):
    record, _ = make_game()
    watcher = LobbyWatcher(app, record.id, f'teacher_{record.id}', settings, SessionService.session_roster)

    assert watcher.refresh() == 'active'


def test_create_session_needs_numeric_quiz_id(teacher_client):
    response = teacher_client.post('/teacher/sessions', json={'quiz_id': 'capitals'})
    assert response.status_code == 400


def test_unplayable_stored_quiz_is_rejected(teacher_client, make_quiz):
    quiz_id = make_quiz(n_questions=1)
    created = teacher_client.post('/teacher/sessions', json={'quiz_id': quiz_id}).get_json()
    Question.query.filter_by(quiz_id=quiz_id).update({Question.correct_answer: 5})
    db.session.commit()

    response = teacher_client.post('/teacher/sessions', json={'quiz_id': quiz_id})
    assert response.status_code == 400
    assert 'not an option' in response.get_json()['error']

    assert teacher_client.post(f"/teacher/sessions/{created['id']}/start").status_code == 409
    roster = teacher_client.get(f"/teacher/sessions/{created['id']}/roster")
    assert roster.status_code == 200
    assert roster.get_json()['question_count'] == 0


def test_socket_join_with_bad_participant_id(app):
    socket_client = socketio.test_client(app)

    socket_client.emit('join_game', {'participant_id': 'alice'})

    received = socket_client.get_received()
    assert received[0]['name'] == 'join_error'
    socket_client.disconnect()


def test_socket_watch_with_bad_session_id(app, teacher_client):
    socket_client = socketio.test_client(app, flask_test_client=teacher_client)

    socket_client.emit('watch_session', {'session_id': 'latest'})

    received = socket_client.get_received()
    assert received[0]['name'] == 'watch_error'
    socket_client.disconnect()


def test_socket_answer_must_be_a_number(app, make_game, make_engine, monkeypatch):
    record, (alice, _) = make_game()
    engine = make_engine(record.id, alice.id)
    engine.start()
    runner = PlayerRunner(app, engine)

    class SeatedPlayers(dict):
        def get(self, sid, default=None):
            return runner

    monkeypatch.setattr('livequiz.sockets.quiz_events.active_players', SeatedPlayers())
    socket_client = socketio.test_client(app)

    socket_client.emit('submit_answer', {'answer': 'B'})
    received = socket_client.get_received()
    assert received[0]['name'] == 'answer_rejected'
    assert received[0]['args'][0]['reason'] == 'invalid_answer'
    assert engine.state.selected_answer is None

    socket_client.emit('submit_answer', {'answer': '0'})
    assert socket_client.get_received() == []
    assert engine.state.score == 150
    socket_client.disconnect()
