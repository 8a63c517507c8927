from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "a3d9e61c0b58"
down_revision = "5b1e0c2f7a41"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "forecast_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subject_id", sa.Integer(), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("area_id", sa.Integer(), sa.ForeignKey("areas.id", ondelete="CASCADE"), nullable=True),
        # "all" for system-wide, else the area id; keeps the unique key free of NULLs
        sa.Column("area_scope", sa.String(length=32), nullable=False, server_default="all"),
        sa.Column("granularity", sa.String(length=16), nullable=False),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column("yhat", sa.Float(), nullable=False),
        sa.Column("yhat_lower", sa.Float(), nullable=False),
        sa.Column("yhat_upper", sa.Float(), nullable=False),
        sa.Column("confidence_level", sa.Float(), nullable=True),
        sa.Column("model_version", sa.String(length=64), nullable=True),
        sa.Column(
            "prediction_data",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=True,
        ),
        sa.Column("generated_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_unique_constraint(
        "uq_forecast_point",
        "forecast_results",
        ["subject_id", "area_scope", "granularity", "target_date"],
    )


def downgrade():
    op.drop_constraint("uq_forecast_point", "forecast_results", type_="unique")
    op.drop_table("forecast_results")
