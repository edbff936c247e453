"""Initial schema: roles, users, activation tokens, follow graph, posts, tags, comments.

Unique and foreign-key constraints carry fixed names; the stores classify
integrity failures by those names.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all tables and seed the role tiers."""
    # --- Roles ---
    roles = op.create_table(
        "roles",
        sa.Column("level", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )
    op.bulk_insert(roles, [
        {"level": 1, "name": "user"},
        {"level": 2, "name": "moderator"},
        {"level": 3, "name": "admin"},
    ])

    # --- Users ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(256), nullable=False),
        sa.Column("age", sa.SmallInteger(), nullable=False),
        sa.Column("gender", sa.SmallInteger(), nullable=False, server_default="0"),
        sa.Column("role_level", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.UniqueConstraint("name", name="uq_users_name"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.ForeignKeyConstraint(["role_level"], ["roles.level"], name="fk_users_role_level"),
    )

    op.create_table(
        "activation_tokens",
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column("token_hash", sa.String(128), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.UniqueConstraint("token_hash", name="uq_activation_tokens_token_hash"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_activation_tokens_user_id", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_activation_tokens_expires_at", "activation_tokens", ["expires_at"])

    # --- Social graph ---
    op.create_table(
        "followers",
        sa.Column("follower_id", sa.BigInteger(), primary_key=True),
        sa.Column("target_id", sa.BigInteger(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(
            ["follower_id"], ["users.id"], name="fk_followers_follower_id", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["target_id"], ["users.id"], name="fk_followers_target_id", ondelete="CASCADE"),
    )
    op.create_index("ix_followers_target_id", "followers", ["target_id"])

    # --- Content ---
    op.create_table(
        "posts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("author_id", sa.BigInteger(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], name="fk_posts_author_id", ondelete="CASCADE"),
    )
    op.create_index("ix_posts_author_id", "posts", ["author_id"])
    op.create_index("ix_posts_created_at", "posts", ["created_at"])

    op.create_table(
        "post_tags",
        sa.Column("post_id", sa.BigInteger(), primary_key=True),
        sa.Column("tag", sa.String(64), primary_key=True),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], name="fk_post_tags_post_id", ondelete="CASCADE"),
    )
    op.create_index("ix_post_tags_tag", "post_tags", ["tag"])

    op.create_table(
        "comments",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("author_id", sa.BigInteger(), nullable=False),
        sa.Column("post_id", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], name="fk_comments_author_id", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], name="fk_comments_post_id", ondelete="CASCADE"),
    )
    op.create_index("ix_comments_post_id", "comments", ["post_id"])

    # Case-insensitive substring search over the feed.
    op.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")
    op.execute("CREATE INDEX ix_posts_title_trgm ON posts USING gin (title gin_trgm_ops)")
    op.execute("CREATE INDEX ix_posts_content_trgm ON posts USING gin (content gin_trgm_ops)")


def downgrade() -> None:
    """Drop everything created above."""
    op.execute("DROP INDEX IF EXISTS ix_posts_content_trgm")
    op.execute("DROP INDEX IF EXISTS ix_posts_title_trgm")
    op.drop_table("comments")
    op.drop_table("post_tags")
    op.drop_table("posts")
    op.drop_table("followers")
    op.drop_table("activation_tokens")
    op.drop_table("users")
    op.drop_table("roles")
