"""Initial schema: work status, import lines, works, mappings, records and batch history."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

IdType = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "work_status",
        sa.Column("wst_iden", IdType, primary_key=True, autoincrement=True),
        sa.Column("wst_work_iden", sa.String(255), nullable=False),
        sa.Column("wst_file_iden", sa.String(255), nullable=True),
        sa.Column("wst_stat_code", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("wst_crea_date", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("wst_begi_date", sa.DateTime(), nullable=True),
        sa.Column("wst_endx_date", sa.DateTime(), nullable=True),
        sa.Column("wst_error_text", sa.String(1000), nullable=True),
        sa.Column("count_lines_errors", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_work_status_stat_code", "work_status", ["wst_stat_code", "wst_iden"])

    op.create_table(
        "import_line",
        sa.Column("iml_iden", IdType, primary_key=True, autoincrement=True),
        sa.Column(
            "wst_iden",
            IdType,
            sa.ForeignKey("work_status.wst_iden", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("iml_text", sa.Text(), nullable=True),
        sa.Column("iml_erro_text", sa.String(1000), nullable=True),
    )
    op.create_index("ix_import_line_wst_iden", "import_line", ["wst_iden", "iml_iden"])

    op.create_table(
        "work",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("system_code", sa.String(50), nullable=True),
        sa.Column("file_iden", sa.String(255), nullable=False),
        sa.Column("pipeline_key", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_work_file_iden", "work", ["file_iden", "sort_order"])

    op.create_table(
        "mapping",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("mapping_type", sa.String(50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_table(
        "mapping_field",
        sa.Column(
            "mapping_fk",
            sa.String(100),
            sa.ForeignKey("mapping.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("iden", sa.Integer(), primary_key=True),
        sa.Column("property", sa.String(100), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("field_offset", sa.Integer(), nullable=False),
        sa.Column("field_length", sa.Integer(), nullable=False),
        sa.Column("pattern", sa.String(50), nullable=True),
        sa.Column("mandatory", sa.String(1), nullable=False, server_default="N"),
        sa.Column("enable", sa.String(1), nullable=False, server_default="Y"),
        sa.Column("transformer", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
    )

    op.create_table(
        "import_record",
        sa.Column("id", IdType, primary_key=True, autoincrement=True),
        sa.Column("wst_iden", IdType, nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("amount", sa.Numeric(18, 4), nullable=True),
        sa.Column("reference", sa.BigInteger(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("rate", sa.Float(), nullable=True),
        sa.Column("record_date", sa.Date(), nullable=True),
    )
    op.create_index("ix_import_record_wst_iden", "import_record", ["wst_iden"])

    op.create_table(
        "batch_job_execution",
        sa.Column("id", IdType, primary_key=True, autoincrement=True),
        sa.Column("job_name", sa.String(255), nullable=False),
        sa.Column("job_key", sa.String(64), nullable=False),
        sa.Column("parameters", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("exit_code", sa.String(20), nullable=True),
        sa.Column("exit_message", sa.String(2500), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=True),
        sa.Column("end_time", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_batch_job_execution_key", "batch_job_execution", ["job_name", "job_key"])

    op.create_table(
        "batch_step_execution",
        sa.Column("id", IdType, primary_key=True, autoincrement=True),
        sa.Column(
            "job_execution_id",
            IdType,
            sa.ForeignKey("batch_job_execution.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("step_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=True),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("read_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("write_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("filter_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("read_skip_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("process_skip_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("write_skip_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("commit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rollback_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("exit_message", sa.Text(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("batch_step_execution")
    op.drop_index("ix_batch_job_execution_key", table_name="batch_job_execution")
    op.drop_table("batch_job_execution")
    op.drop_index("ix_import_record_wst_iden", table_name="import_record")
    op.drop_table("import_record")
    op.drop_table("mapping_field")
    op.drop_table("mapping")
    op.drop_index("ix_work_file_iden", table_name="work")
    op.drop_table("work")
    op.drop_index("ix_import_line_wst_iden", table_name="import_line")
    op.drop_table("import_line")
    op.drop_index("ix_work_status_stat_code", table_name="work_status")
    op.drop_table("work_status")
