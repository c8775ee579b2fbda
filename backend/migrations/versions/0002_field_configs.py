"""Order-form field configuration

Revision ID: 0002_field_configs
Revises: 0001_initial_schema
Create Date: 2026-10-19 15:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_field_configs"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "field_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("label", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("editable_by", sa.String(length=16), nullable=False, server_default="admin"),
        sa.Column("visible_to", sa.String(length=16), nullable=False, server_default="both"),
        sa.Column("placeholder", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("validation", sa.JSON(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_field_configs_name", "field_configs", ["name"], unique=True)
    op.create_index("ix_field_configs_active_position", "field_configs", ["is_active", "position"])


def downgrade():
    op.drop_index("ix_field_configs_active_position", table_name="field_configs")
    op.drop_index("ix_field_configs_name", table_name="field_configs")
    op.drop_table("field_configs")
