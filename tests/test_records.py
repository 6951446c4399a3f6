import pytest

from livequiz.services.records import QuestionRecord, QuizSnapshot


def make_question(position=0, **overrides):
    data = {
        'id': position + 1,
        'prompt': f'Question {position + 1}',
        'options': ('A', 'B', 'C'),
        'correct_answer': 0,
        'points': 100,
        'time_limit': 30,
        'position': position,
    }
    data.update(overrides)
    return QuestionRecord(**data)


@pytest.mark.parametrize('overrides', [
    {'options': ()},
    {'correct_answer': 3},
    {'correct_answer': -1},
    {'points': -10},
    {'time_limit': 0},
])
def test_invalid_questions_are_rejected(overrides):
    with pytest.raises(ValueError):
        make_question(**overrides)


def test_snapshot_orders_questions_by_position():
    snapshot = QuizSnapshot.build(1, 'Quiz', [make_question(2), make_question(0), make_question(1)])

    assert [q.position for q in snapshot.questions] == [0, 1, 2]
    assert snapshot.question_count == 3
    assert snapshot.question_at(3) is None
    assert snapshot.question_at(-1) is None


def test_snapshot_requires_contiguous_positions():
    with pytest.raises(ValueError):
        QuizSnapshot.build(1, 'Quiz', [make_question(0), make_question(2)])


def test_snapshot_survives_json_storage():
    snapshot = QuizSnapshot.build(1, 'Quiz', [make_question(0), make_question(1)])
    assert QuizSnapshot.from_dict(snapshot.to_dict()) == snapshot


def test_public_question_hides_the_answer():
    assert 'correct_answer' not in make_question().public_dict()
