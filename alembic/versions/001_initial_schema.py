"""
001_initial_schema.py — Initial database schema.

Creates all tables from scratch:
  - node          (repository objects; member_of forms the hierarchy)
  - file_managed  (raw-bytes records, one locator each)
  - media         (file metadata tagged with a use, owned by a node)
  - settings      (key/value configuration, e.g. s3_url)

Downgrade drops all tables in reverse FK order.
"""
from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None       # first migration — no parent
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── node ──────────────────────────────────────────────────────────────────
    # member_of is deliberately not checked for cycles; the archiver guards
    # against them while walking.
    op.create_table(
        "node",
        sa.Column("id",           sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("title",        sa.Text(),       nullable=False),
        sa.Column("model",        sa.Text(),       nullable=True),
        sa.Column("member_of",    sa.BigInteger(), sa.ForeignKey("node.id", ondelete="SET NULL"), nullable=True),
        sa.Column("archive_link", sa.Text(),       nullable=True),
        sa.Column("created_at",   sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()")),
        sa.Column("updated_at",   sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()")),
    )

    # ── file_managed ──────────────────────────────────────────────────────────
    op.create_table(
        "file_managed",
        sa.Column("id",         sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("filename",   sa.Text(),       nullable=False),
        sa.Column("uri",        sa.Text(),       nullable=False),
        sa.Column("filemime",   sa.Text(),       nullable=True),
        sa.Column("filesize",   sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()")),
    )

    # ── media ─────────────────────────────────────────────────────────────────
    # file_id is SET NULL: the archiver deletes the file row before the media row.
    op.create_table(
        "media",
        sa.Column("id",         sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("name",       sa.Text(),       nullable=False),
        sa.Column("bundle",     sa.Text(),       nullable=False, server_default="file"),
        sa.Column("media_of",   sa.BigInteger(), sa.ForeignKey("node.id", ondelete="CASCADE"), nullable=False),
        sa.Column("media_use",  sa.Text(),       nullable=False),
        sa.Column("file_id",    sa.BigInteger(), sa.ForeignKey("file_managed.id", ondelete="SET NULL"), nullable=True),
        sa.Column("file_title", sa.Text(),       nullable=True),
        sa.Column("mime_type",  sa.Text(),       nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("NOW()")),
    )

    # ── settings ──────────────────────────────────────────────────────────────
    op.create_table(
        "settings",
        sa.Column("name",  sa.Text(), primary_key=True),
        sa.Column("value", sa.Text(), nullable=True),
    )

    # ── Indexes ───────────────────────────────────────────────────────────────
    op.create_index("idx_node_member_of", "node",  ["member_of"])
    op.create_index("idx_node_model",     "node",  ["model"])
    op.create_index("idx_media_of_use",   "media", ["media_of", "media_use"])
    op.create_index("idx_media_file",     "media", ["file_id"])


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_table("media")
    op.drop_table("file_managed")
    op.drop_table("node")
