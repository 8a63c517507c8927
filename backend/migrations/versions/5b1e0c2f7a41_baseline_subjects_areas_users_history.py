from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5b1e0c2f7a41"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "subjects",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", sa.String(length=16), nullable=False, server_default="service"),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.UniqueConstraint("kind", "code", name="uq_subjects_kind_code"),
    )
    op.create_index("ix_subjects_id", "subjects", ["id"])

    op.create_table(
        "areas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
    )
    op.create_index("ix_areas_id", "areas", ["id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="staff"),
        sa.Column(
            "assigned_subject_id",
            sa.Integer(),
            sa.ForeignKey("subjects.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)  # unique via index (SQLite-friendly)

    op.create_table(
        "raw_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subject_id", sa.Integer(), sa.ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("area_id", sa.Integer(), sa.ForeignKey("areas.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_raw_events_id", "raw_events", ["id"])
    op.create_index("ix_raw_events_subject_date", "raw_events", ["subject_id", "occurred_on"])
    op.create_index("ix_raw_events_subject_area_date", "raw_events", ["subject_id", "area_id", "occurred_on"])

    op.create_table(
        "imported_statistics",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subject_id", sa.Integer(), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("area_id", sa.Integer(), sa.ForeignKey("areas.id", ondelete="SET NULL"), nullable=True),
        sa.Column("record_date", sa.Date(), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("provenance", sa.String(length=128), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("count >= 0", name="ck_imported_statistics_count_nonneg"),
    )
    op.create_index("ix_imported_statistics_id", "imported_statistics", ["id"])
    op.create_index("ix_imported_statistics_subject_date", "imported_statistics", ["subject_id", "record_date"])


def downgrade() -> None:
    op.drop_index("ix_imported_statistics_subject_date", table_name="imported_statistics")
    op.drop_index("ix_imported_statistics_id", table_name="imported_statistics")
    op.drop_table("imported_statistics")
    op.drop_index("ix_raw_events_subject_area_date", table_name="raw_events")
    op.drop_index("ix_raw_events_subject_date", table_name="raw_events")
    op.drop_index("ix_raw_events_id", table_name="raw_events")
    op.drop_table("raw_events")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_areas_id", table_name="areas")
    op.drop_table("areas")
    op.drop_index("ix_subjects_id", table_name="subjects")
    op.drop_table("subjects")
