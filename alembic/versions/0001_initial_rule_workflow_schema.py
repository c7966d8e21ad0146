"""initial rule & workflow engine schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
    )


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk("user_id"),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(200)),
        _created_at(),
    )
    op.create_table(
        "teams",
        _uuid_pk("team_id"),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        _created_at(),
    )

    op.create_table(
        "leads",
        _uuid_pk("lead_id"),
        sa.Column("company_name", sa.String(200), nullable=False),
        sa.Column("domain", sa.String(255)),
        sa.Column("industry", sa.String(100)),
        sa.Column("status", sa.String(50), nullable=False, server_default="RAW"),
        sa.Column("score", sa.Integer()),
        sa.Column(
            "assigned_to_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="SET NULL"),
        ),
        sa.Column(
            "assigned_team_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("teams.team_id", ondelete="SET NULL"),
        ),
        sa.Column("campaign_id", postgresql.UUID(as_uuid=True)),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "score IS NULL OR score BETWEEN 0 AND 100", name="ck_lead_score_range"
        ),
    )
    op.create_index("idx_leads_status", "leads", ["status"])
    op.create_index("idx_leads_assigned_to", "leads", ["assigned_to_id"])

    op.create_table(
        "lead_scoring_details",
        _uuid_pk("scoring_id"),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.lead_id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("total_score", sa.Integer()),
        sa.Column("confidence", sa.Numeric(5, 4)),
        sa.Column(
            "scored_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
        ),
    )
    op.create_table(
        "lead_enrichments",
        _uuid_pk("enrichment_id"),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.lead_id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("company_size", sa.String(50)),
        sa.Column("revenue", sa.Numeric(18, 2)),
        sa.Column(
            "enriched_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
        ),
    )

    op.create_table(
        "business_rules",
        _uuid_pk("rule_id"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("conditions", postgresql.JSONB(), nullable=False),
        sa.Column("actions", postgresql.JSONB(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_by_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="SET NULL"),
        ),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "type IN ('assignment', 'scoring', 'notification', 'status_change', 'enrichment')",
            name="ck_business_rule_type",
        ),
        sa.CheckConstraint("priority BETWEEN 0 AND 100", name="ck_business_rule_priority"),
    )
    op.create_index(
        "idx_business_rules_active_priority", "business_rules", ["is_active", "priority"]
    )

    op.create_table(
        "workflows",
        _uuid_pk("workflow_id"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("trigger", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_by_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="SET NULL"),
        ),
        _created_at(),
        _updated_at(),
    )
    op.create_index(
        "idx_workflows_trigger_active", "workflows", ["trigger", "is_active"]
    )

    op.create_table(
        "workflow_steps",
        _uuid_pk("step_id"),
        sa.Column(
            "workflow_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workflows.workflow_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column(
            "config",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.UniqueConstraint("workflow_id", "order", name="uq_workflow_step_order"),
    )

    op.create_table(
        "workflow_executions",
        _uuid_pk("execution_id"),
        sa.Column(
            "workflow_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workflows.workflow_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.lead_id", ondelete="SET NULL"),
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.user_id", ondelete="SET NULL"),
        ),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("trigger_data", postgresql.JSONB()),
        sa.Column(
            "started_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("error_message", sa.Text()),
        sa.Column("resume_at", sa.DateTime(timezone=True)),
        sa.Column("resume_after_order", sa.Integer()),
        sa.CheckConstraint(
            "status IN ('running', 'completed', 'failed')",
            name="ck_workflow_execution_status",
        ),
    )
    op.create_index(
        "idx_workflow_executions_workflow",
        "workflow_executions",
        ["workflow_id", "started_at"],
    )
    op.create_index(
        "idx_workflow_executions_resume",
        "workflow_executions",
        ["status", "resume_at"],
    )

    op.create_table(
        "workflow_step_results",
        _uuid_pk("result_id"),
        sa.Column(
            "execution_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workflow_executions.execution_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "step_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workflow_steps.step_id", ondelete="SET NULL"),
        ),
        sa.Column("step_name", sa.String(100), nullable=False),
        sa.Column("step_type", sa.String(50), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("result", postgresql.JSONB()),
        sa.Column("error", sa.Text()),
        sa.Column(
            "recorded_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
        ),
        sa.UniqueConstraint("execution_id", "position", name="uq_step_result_position"),
    )

    op.create_table(
        "rule_execution_logs",
        _uuid_pk("log_id"),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True)),
        sa.Column(
            "rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("business_rules.rule_id", ondelete="SET NULL"),
        ),
        sa.Column("trigger_event", sa.String(50), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text()),
        sa.Column(
            "executed_at", sa.DateTime(timezone=True), server_default=sa.text("now()")
        ),
    )
    op.create_index(
        "idx_rule_execution_logs_rule", "rule_execution_logs", ["rule_id", "executed_at"]
    )
    op.create_index(
        "idx_rule_execution_logs_lead", "rule_execution_logs", ["lead_id", "executed_at"]
    )

    op.create_table(
        "audit_logs",
        _uuid_pk("audit_id"),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True)),
        sa.Column("description", sa.Text()),
        _created_at(),
        sa.CheckConstraint(
            "action IN ('CREATE', 'UPDATE', 'DELETE')", name="ck_audit_log_action"
        ),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_index("idx_rule_execution_logs_lead", table_name="rule_execution_logs")
    op.drop_index("idx_rule_execution_logs_rule", table_name="rule_execution_logs")
    op.drop_table("rule_execution_logs")
    op.drop_table("workflow_step_results")
    op.drop_index("idx_workflow_executions_resume", table_name="workflow_executions")
    op.drop_index("idx_workflow_executions_workflow", table_name="workflow_executions")
    op.drop_table("workflow_executions")
    op.drop_table("workflow_steps")
    op.drop_index("idx_workflows_trigger_active", table_name="workflows")
    op.drop_table("workflows")
    op.drop_index("idx_business_rules_active_priority", table_name="business_rules")
    op.drop_table("business_rules")
    op.drop_table("lead_enrichments")
    op.drop_table("lead_scoring_details")
    op.drop_index("idx_leads_assigned_to", table_name="leads")
    op.drop_index("idx_leads_status", table_name="leads")
    op.drop_table("leads")
    op.drop_table("teams")
    op.drop_table("users")
