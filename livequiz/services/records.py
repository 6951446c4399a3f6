"""
Records
Typed snapshots handed out by the data access layer

Engines work on these instead of live ORM rows, so a record never changes
under them and never needs a database session.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime


def _iso(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class QuestionRecord:
    """One multiple-choice question"""

    id: int
    prompt: str
    options: tuple[str, ...]
    correct_answer: int
    points: int
    time_limit: int
    position: int
    explanation: str | None = None

    def __post_init__(self) -> None:
        if not self.options:
            raise ValueError(f"Question {self.id} has no options")
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(f"Question {self.id} correct answer {self.correct_answer} is not an option")
        if self.points < 0:
            raise ValueError(f"Question {self.id} has negative points")
        if self.time_limit <= 0:
            raise ValueError(f"Question {self.id} time limit must be positive")

    @classmethod
    def from_dict(cls, data: dict) -> QuestionRecord:
        return cls(
            id=int(data["id"]),
            prompt=str(data["prompt"]),
            options=tuple(str(o) for o in data["options"]),
            correct_answer=int(data["correct_answer"]),
            points=int(data["points"]),
            time_limit=int(data["time_limit"]),
            position=int(data["position"]),
            explanation=data.get("explanation"),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["options"] = list(self.options)
        return data

    def public_dict(self) -> dict:
        """Question as shown to a player while answering (no correct answer)"""
        return {
            "id": self.id,
            "prompt": self.prompt,
            "options": list(self.options),
            "points": self.points,
            "time_limit": self.time_limit,
            "position": self.position,
        }


@dataclass(frozen=True)
class QuizSnapshot:
    """Questions of a quiz in play order, frozen for one session"""

    quiz_id: int
    title: str
    questions: tuple[QuestionRecord, ...]

    def __post_init__(self) -> None:
        positions = [q.position for q in self.questions]
        if positions != list(range(len(positions))):
            raise ValueError(
                f"Quiz {self.quiz_id} question positions must be contiguous from 0, got {positions}"
            )

    @classmethod
    def build(cls, quiz_id: int, title: str, questions) -> QuizSnapshot:
        ordered = sorted(questions, key=lambda q: q.position)
        return cls(quiz_id=quiz_id, title=title, questions=tuple(ordered))

    @classmethod
    def from_dict(cls, data: dict) -> QuizSnapshot:
        return cls.build(
            int(data["quiz_id"]),
            str(data.get("title", "")),
            [QuestionRecord.from_dict(q) for q in data.get("questions", [])],
        )

    def to_dict(self) -> dict:
        return {
            "quiz_id": self.quiz_id,
            "title": self.title,
            "questions": [q.to_dict() for q in self.questions],
        }

    @property
    def question_count(self) -> int:
        return len(self.questions)

    def question_at(self, index: int) -> QuestionRecord | None:
        if 0 <= index < len(self.questions):
            return self.questions[index]
        return None


@dataclass(frozen=True)
class SessionRecord:
    """Game session header"""

    id: int
    quiz_id: int
    pin: str
    status: str
    teacher_id: int | None = None
    settings: dict = field(default_factory=dict)
    created_at: datetime | str | None = None
    started_at: datetime | str | None = None
    ended_at: datetime | str | None = None

    @classmethod
    def from_row(cls, row: dict) -> SessionRecord:
        return cls(
            id=int(row["id"]),
            quiz_id=int(row["quiz_id"]),
            pin=row["pin"],
            status=row["status"],
            teacher_id=row.get("teacher_id"),
            settings=dict(row.get("settings") or {}),
            created_at=row.get("created_at"),
            started_at=row.get("started_at"),
            ended_at=row.get("ended_at"),
        )

    def to_dict(self) -> dict:
        return {key: _iso(value) for key, value in asdict(self).items()}


@dataclass(frozen=True)
class ParticipantRecord:
    """A player's persisted progress"""

    id: int
    session_id: int
    nickname: str
    user_id: int | None = None
    score: int = 0
    correct_answers: int = 0
    streak: int = 0
    current_question_index: int = 0
    is_active: bool = True
    joined_at: datetime | str | None = None

    @classmethod
    def from_row(cls, row: dict) -> ParticipantRecord:
        return cls(
            id=int(row["id"]),
            session_id=int(row["session_id"]),
            nickname=row["nickname"],
            user_id=row.get("user_id"),
            score=int(row.get("score") or 0),
            correct_answers=int(row.get("correct_answers") or 0),
            streak=int(row.get("streak") or 0),
            current_question_index=int(row.get("current_question_index") or 0),
            is_active=bool(row.get("is_active", True)),
            joined_at=row.get("joined_at"),
        )

    def to_dict(self) -> dict:
        return {key: _iso(value) for key, value in asdict(self).items()}


@dataclass(frozen=True)
class BadgeRecord:
    """Catalog badge"""

    id: int
    name: str
    description: str
    icon: str
    rarity: str
    points_value: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class LeaderboardEntry:
    """One leaderboard line"""

    rank: int
    participant_id: int
    nickname: str
    score: int
    correct_answers: int
    streak: int
    user_id: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)
