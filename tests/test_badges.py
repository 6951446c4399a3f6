import pytest

from livequiz.models import Achievement, Badge
from livequiz.services import BadgeContext, BadgeEngine, DataAccess, seed_badges
from livequiz.services.badge_service import BADGE_CATALOG


@pytest.fixture
def user(app):
    return DataAccess.create_user('Ada', 'ada@example.com')


@pytest.fixture
def badges(settings):
    return BadgeEngine(settings)


def names(awarded):
    return [b.name for b in awarded]


def test_catalog_is_seeded_once(app):
    assert Badge.query.count() == len(BADGE_CATALOG)
    assert seed_badges() == 0
    assert Badge.query.count() == len(BADGE_CATALOG)


def test_award_is_idempotent(badges, user):
    context = BadgeContext(streak=10)

    assert names(badges.evaluate(user, context)) == ['Streak Master']
    assert badges.evaluate(user, context) == []
    assert badges.evaluate(user, context) == []

    assert Achievement.query.filter_by(user_id=user).count() == 1


def test_both_streak_badges_in_threshold_order(badges, user):
    assert names(badges.evaluate(user, BadgeContext(streak=25))) == ['Streak Master', 'Perfect Streak']


@pytest.mark.parametrize('streak, expected', [
    (9, []),
    (10, ['Streak Master']),
    (24, ['Streak Master']),
])
def test_streak_thresholds(badges, user, streak, expected):
    assert names(badges.evaluate(user, BadgeContext(streak=streak))) == expected


@pytest.mark.parametrize('answer_time, expected', [
    (0, ['Quick Draw']),
    (4, ['Quick Draw']),
    (5, []),
    (None, []),
])
def test_quick_draw_needs_strictly_less_than_five_seconds(badges, user, answer_time, expected):
    assert names(badges.evaluate(user, BadgeContext(answer_time=answer_time))) == expected


def test_first_steps_only_for_first_game(badges, user):
    assert badges.evaluate(user, BadgeContext(is_first_game=False)) == []
    assert names(badges.evaluate(user, BadgeContext(is_first_game=True))) == ['First Steps']


def test_perfect_score_needs_completed_game(badges, user):
    assert badges.evaluate(user, BadgeContext(perfect_score=True)) == []
    assert badges.evaluate(user, BadgeContext(game_completed=True, perfect_score=False)) == []
    assert names(badges.evaluate(user, BadgeContext(game_completed=True, perfect_score=True))) == ['Perfect Score']


def test_knowledge_seeker_at_fifty_games(badges, user):
    assert badges.evaluate(user, BadgeContext(total_games=49)) == []
    assert names(badges.evaluate(user, BadgeContext(total_games=50))) == ['Knowledge Seeker']


def test_anonymous_players_earn_nothing(badges):
    assert badges.evaluate(None, BadgeContext(streak=30, is_first_game=True, answer_time=1)) == []
    assert Achievement.query.count() == 0


def test_user_badges_lists_earned_badges(badges, user):
    badges.evaluate(user, BadgeContext(answer_time=2))
    badges.evaluate(user, BadgeContext(streak=10))

    earned = BadgeEngine.user_badges(user)

    assert [item['badge']['name'] for item in earned] == ['Quick Draw', 'Streak Master']
    assert earned[0]['context'] == 'Answered in 2 seconds'


def test_first_answer_of_first_game_earns_first_steps_and_quick_draw(make_game, make_engine, user):
    record, (player,) = make_game(players=('Ada',), user_ids=[user])
    engine = make_engine(record.id, player.id)
    engine.start()
    assert engine.is_first_game

    result = engine.submit_answer(0)

    assert names(result.new_badges) == ['First Steps', 'Quick Draw']


def test_timeout_never_earns_quick_draw(make_game, make_engine, user):
    record, (player,) = make_game(players=('Ada',), user_ids=[user], time_limit=3)
    engine = make_engine(record.id, player.id)
    engine.start()

    for _ in range(3):
        engine.tick()

    earned = [item['badge']['name'] for item in BadgeEngine.user_badges(user)]
    assert 'Quick Draw' not in earned
    assert 'First Steps' in earned


def test_returning_player_is_not_on_first_game(make_game, make_engine, user):
    make_game(players=('Ada',), user_ids=[user])
    record, (player,) = make_game(players=('Ada',), user_ids=[user])

    engine = make_engine(record.id, player.id)

    assert engine.prior_games == 1
    assert not engine.is_first_game


def test_perfect_game_earns_perfect_score(make_game, make_engine, user, play_through):
    record, (player,) = make_game(players=('Ada',), user_ids=[user], n_questions=2)
    engine = make_engine(record.id, player.id)
    engine.start()

    play_through(engine, [0, 0])

    earned = [item['badge']['name'] for item in BadgeEngine.user_badges(user)]
    assert 'Perfect Score' in earned
    assert 'Perfect Score' in [b.name for b in engine.state.new_badges]


def test_imperfect_game_earns_no_perfect_score(make_game, make_engine, user, play_through):
    record, (player,) = make_game(players=('Ada',), user_ids=[user], n_questions=2)
    engine = make_engine(record.id, player.id)
    engine.start()

    play_through(engine, [0, 3])

    earned = [item['badge']['name'] for item in BadgeEngine.user_badges(user)]
    assert 'Perfect Score' not in earned
