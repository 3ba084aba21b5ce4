"""
alembic/versions/002_archive_filename.py

Store the original file name next to the archive link:
  - node.archive_filename is written when a node is archived
  - recovery uses it instead of splitting the link on "-", which breaks
    for file names that contain a dash

Existing archived nodes keep NULL and fall back to the split.

To apply: alembic upgrade head
To revert: alembic downgrade -1
"""
from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("node", sa.Column("archive_filename", sa.Text(), nullable=True))


def downgrade() -> None:
    op.drop_column("node", "archive_filename")
