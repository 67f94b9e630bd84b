from sqlalchemy.orm import declarative_base
from sqlalchemy import *
from datetime import datetime, timezone


Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Team(Base):
    __tablename__ = 'teams'

    name = Column(String(255), primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class User(Base):
    __tablename__ = 'users'

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean(), nullable=False, default=True)
    team_id = Column(String(255), ForeignKey('teams.name'), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_users_team_active', 'team_id', 'is_active'),
    )


class PullRequest(Base):
    __tablename__ = 'pull_requests'

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    author_id = Column(String(255), ForeignKey('users.id'), nullable=False, index=True)
    status = Column(String(16), nullable=False, default='OPEN')
    need_more_reviewers = Column(Boolean(), nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    merged_at = Column(DateTime(timezone=True), nullable=True)


class PullRequestReviewer(Base):
    __tablename__ = 'pr_reviewers'

    pull_request_id = Column(String(255), ForeignKey('pull_requests.id'), nullable=False)
    reviewer_id = Column(String(255), ForeignKey('users.id'), nullable=False, index=True)

    __table_args__ = (
        PrimaryKeyConstraint('pull_request_id', 'reviewer_id'),
    )
