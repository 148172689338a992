"""initial_demand_engine_schema

Creates the demand engine tables:
  - areas, coordinations, people         — organisational reference data
  - categories, sla_configs              — SLA rules, unique per (category, complexity)
  - demands                              — lifecycle record with JSON audit columns

Tables are created only when missing so the revision can run against a
database that already received them through db.create_all().

Revision ID: 3f1c9a2d7b10
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '3f1c9a2d7b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())

    # ── Organisation ──────────────────────────────────────────────────────
    if "areas" not in existing:
        op.create_table(
            "areas",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "coordinations" not in existing:
        op.create_table(
            "coordinations",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "people" not in existing:
        op.create_table(
            "people",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=100), nullable=True),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("coordination_id", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["coordination_id"], ["coordinations.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_people_coordination_id", "people", ["coordination_id"])

    # ── SLA configuration ─────────────────────────────────────────────────
    if "categories" not in existing:
        op.create_table(
            "categories",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "sla_configs" not in existing:
        op.create_table(
            "sla_configs",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("category_id", sa.String(length=64), nullable=False),
            sa.Column("complexity", sa.String(length=10), nullable=False,
                      comment="low | medium | high"),
            sa.Column("sla_hours", sa.Float(), nullable=False,
                      comment="Maximum elapsed hours"),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("category_id", "complexity", name="uq_sla_category_complexity"),
        )
        op.create_index("ix_sla_configs_category_id", "sla_configs", ["category_id"])

    # ── Demands ───────────────────────────────────────────────────────────
    if "demands" not in existing:
        op.create_table(
            "demands",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="intake"),
            sa.Column("person_id", sa.String(length=64), nullable=True),
            sa.Column("coordination_id", sa.String(length=64), nullable=True),
            sa.Column("requester_name", sa.String(length=200), nullable=True),
            sa.Column("requester_area_id", sa.String(length=64), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("demand_type", sa.String(length=10), nullable=True),
            sa.Column("complexity", sa.String(length=10), nullable=True),
            sa.Column("effort", sa.Float(), nullable=True),
            sa.Column("agreed_deadline", sa.Date(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("delivery_summary", sa.Text(), nullable=True),
            sa.Column("delay_justification", sa.Text(), nullable=True),
            sa.Column("cancellation_reason", sa.Text(), nullable=True),
            sa.Column("is_priority", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status_timestamps", sa.JSON(), nullable=True),
            sa.Column("logs", sa.JSON(), nullable=True),
            sa.Column("history", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["coordination_id"], ["coordinations.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["requester_area_id"], ["areas.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_demands_status", "demands", ["status"])
        op.create_index("ix_demands_person_id", "demands", ["person_id"])
        op.create_index("ix_demands_coordination_id", "demands", ["coordination_id"])


def downgrade():
    op.drop_table("demands")
    op.drop_table("sla_configs")
    op.drop_table("categories")
    op.drop_table("people")
    op.drop_table("coordinations")
    op.drop_table("areas")
