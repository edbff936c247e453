"""ORM models for the social content schema.

Constraint names are fixed so that integrity failures can be classified by
name at the store boundary.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agora.db.base import Base, BigIntPK

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class Role(Base):
    """Static name -> tier table, seeded by migration."""

    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("name", name="uq_roles_name"),)

    level: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(32), nullable=False)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table."""

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("name", name="uq_users_name"),
        UniqueConstraint("email", name="uq_users_email"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    age: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    gender: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)  # 0 = M, 1 = F
    role_level: Mapped[int] = mapped_column(
        Integer, ForeignKey("roles.level", name="fk_users_role_level"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ActivationToken(Base):
    """Single-use activation secret, stored as a SHA-256 hash. One row per user at most."""

    __tablename__ = "activation_tokens"
    __table_args__ = (UniqueConstraint("token_hash", name="uq_activation_tokens_token_hash"),)

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_activation_tokens_user_id"),
        primary_key=True,
    )
    token_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Social graph
# ---------------------------------------------------------------------------


class Follower(Base):
    """Directed follow edge: follower_id follows target_id."""

    __tablename__ = "followers"

    follower_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_followers_follower_id"),
        primary_key=True,
    )
    target_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_followers_target_id"),
        primary_key=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


class Post(Base):
    """Maps to the 'posts' table. ``version`` starts at 1 and grows by one per update."""

    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_posts_author_id"),
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    tag_rows: Mapped[list[PostTag]] = relationship(
        "PostTag",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PostTag.tag",
    )

    @property
    def tags(self) -> list[str]:
        return [row.tag for row in self.tag_rows]


class PostTag(Base):
    """One tag of a post's tag set."""

    __tablename__ = "post_tags"

    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE", name="fk_post_tags_post_id"),
        primary_key=True,
    )
    tag: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)


class Comment(Base):
    """Comment on a post. Removed together with its post."""

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_comments_author_id"),
        nullable=False,
    )
    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE", name="fk_comments_post_id"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
