import pytest

from livequiz import create_app
from livequiz.extensions import db
from livequiz.services import (
    DataAccess, EngineSettings, PlayerEngine, SessionCompletionCoordinator,
    SessionService, feed
)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
    feed.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def settings(app):
    return EngineSettings.from_config(app.config)


@pytest.fixture
def published():
    """Leaderboards handed to the coordinator's publisher"""
    return []


@pytest.fixture
def coordinator(settings, published):
    return SessionCompletionCoordinator(
        settings, publisher=lambda session_id, board: published.append((session_id, board))
    )


@pytest.fixture
def sessions(settings, coordinator):
    return SessionService(settings, coordinator)


@pytest.fixture
def make_quiz(app):
    def _make(n_questions=3, correct_answer=0, points=100, time_limit=30, title='Capitals'):
        questions = [
            {
                'prompt': f'Question {i + 1}',
                'options': ['A', 'B', 'C', 'D'],
                'correct_answer': correct_answer,
                'points': points,
                'time_limit': time_limit,
            }
            for i in range(n_questions)
        ]
        return DataAccess.create_quiz(title, questions)
    return _make


@pytest.fixture
def make_game(sessions, make_quiz):
    """Quiz + session + participants; started unless start=False"""
    def _make(players=('Alice', 'Bob'), n_questions=3, user_ids=None, start=True, **quiz_kwargs):
        quiz_id = make_quiz(n_questions, **quiz_kwargs)
        record = sessions.create_session(quiz_id)
        user_ids = list(user_ids or [None] * len(players))
        participants = [
            sessions.join_session(record.pin, name, user_id)[1]
            for name, user_id in zip(players, user_ids)
        ]
        if start:
            record = sessions.start_session(record.id)
        return record, participants
    return _make


@pytest.fixture
def make_engine(settings, coordinator):
    engines = []

    def _make(session_id, participant_id, **kwargs):
        kwargs.setdefault('settings', settings)
        kwargs.setdefault('coordinator', coordinator)
        engine = PlayerEngine(session_id, participant_id, **kwargs)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


@pytest.fixture
def play_through():
    """Answer each question in turn, leaving the results screen after each"""
    def _play(engine, answers):
        for option in answers:
            assert engine.submit_answer(option) is not None
            engine.finish_results()
    return _play
