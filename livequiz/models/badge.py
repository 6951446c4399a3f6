"""
Badge and Achievement Models
Badges are a seeded catalog; achievements join users to badges
"""
from livequiz.extensions import db
from datetime import datetime, timezone


def now_utc():
    return datetime.now(timezone.utc)


class Badge(db.Model):
    """Badge catalog entry"""
    __tablename__ = 'badges'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, default='')
    icon = db.Column(db.String(20), default='')
    rarity = db.Column(db.String(20), default='common')  # common | rare | epic | legendary
    requirement = db.Column(db.Text, default='')
    points_value = db.Column(db.Integer, default=0)

    def __repr__(self):
        return f'<Badge {self.name}>'


class Achievement(db.Model):
    """A badge earned by a user"""
    __tablename__ = 'achievements'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    badge_id = db.Column(db.Integer, db.ForeignKey('badges.id'), nullable=False)
    context = db.Column(db.Text, default='')
    earned_at = db.Column(db.DateTime, default=now_utc)

    badge = db.relationship('Badge', lazy='joined')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'badge_id', name='unique_badge_per_user'),
    )

    def __repr__(self):
        return f'<Achievement U{self.user_id} B{self.badge_id}>'
