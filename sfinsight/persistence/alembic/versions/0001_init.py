"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-01 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _org_fk() -> sa.Column:
    return sa.Column(
        "org_id",
        sa.Integer(),
        sa.ForeignKey("salesforce_orgs.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(), nullable=False, unique=True),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("key_prefix", sa.String(), nullable=False),
        sa.Column("key_hash", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"], unique=True)

    op.create_table(
        "salesforce_orgs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("domain", sa.String(), nullable=False),
        sa.Column("instance_url", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("auth_method", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        # Encrypted credential envelopes, never plaintext.
        sa.Column("access_token_enc", sa.Text(), nullable=True),
        sa.Column("refresh_token_enc", sa.Text(), nullable=True),
        sa.Column("password_enc", sa.Text(), nullable=True),
        sa.Column("security_token_enc", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("connection_status", sa.String(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_salesforce_orgs_user_id", "salesforce_orgs", ["user_id"])

    op.create_table(
        "metadata",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("org_id", "type", "name", name="uq_metadata_org_type_name"),
    )
    op.create_index("ix_metadata_org_id", "metadata", ["org_id"])

    op.create_table(
        "health_scores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column("overall_score", sa.Integer(), nullable=False),
        sa.Column("security_score", sa.Integer(), nullable=False),
        sa.Column("data_model_score", sa.Integer(), nullable=False),
        sa.Column("automation_score", sa.Integer(), nullable=False),
        sa.Column("apex_score", sa.Integer(), nullable=False),
        sa.Column("ui_component_score", sa.Integer(), nullable=False),
        sa.Column("complexity_score", sa.Integer(), nullable=False),
        sa.Column("performance_risk", sa.Integer(), nullable=False),
        sa.Column("technical_debt", sa.Integer(), nullable=False),
        sa.Column("metadata_volume", sa.Integer(), nullable=False),
        sa.Column("customization_level", sa.Integer(), nullable=False),
        sa.Column("issues", postgresql.JSONB(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_health_scores_org_id", "health_scores", ["org_id"])

    op.create_table(
        "saved_queries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _org_fk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("query", sa.Text(), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_saved_queries_user_id", "saved_queries", ["user_id"])
    op.create_index("ix_saved_queries_org_id", "saved_queries", ["org_id"])

    op.create_table(
        "issues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), server_default="open", nullable=False),
        sa.Column("related_metadata", postgresql.JSONB(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_issues_org_id", "issues", ["org_id"])

    op.create_table(
        "filter_templates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("filters", postgresql.JSONB(), nullable=False),
        sa.Column("is_shared", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _created_at(),
    )
    op.create_index("ix_filter_templates_user_id", "filter_templates", ["user_id"])

    op.create_table(
        "code_quality",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column(
            "component_id", sa.Integer(), sa.ForeignKey("metadata.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("component_name", sa.String(), nullable=False),
        sa.Column("component_type", sa.String(), nullable=False),
        sa.Column("quality_score", sa.Integer(), nullable=False),
        sa.Column("complexity_score", sa.Integer(), nullable=False),
        sa.Column("test_coverage", sa.Integer(), nullable=True),
        sa.Column("best_practices_score", sa.Integer(), nullable=False),
        sa.Column("security_score", sa.Integer(), nullable=False),
        sa.Column("performance_score", sa.Integer(), nullable=False),
        sa.Column("issues_count", sa.Integer(), nullable=False),
        sa.Column("issues", postgresql.JSONB(), nullable=False),
        sa.Column("complexity_metrics", postgresql.JSONB(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_code_quality_org_type", "code_quality", ["org_id", "component_type"])

    op.create_table(
        "component_dependencies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column(
            "source_component_id",
            sa.Integer(),
            sa.ForeignKey("metadata.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_component_name", sa.String(), nullable=False),
        sa.Column("source_component_type", sa.String(), nullable=False),
        sa.Column(
            "target_component_id",
            sa.Integer(),
            sa.ForeignKey("metadata.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("target_component_name", sa.String(), nullable=False),
        sa.Column("target_component_type", sa.String(), nullable=False),
        sa.Column("dependency_type", sa.String(), nullable=False),
        sa.Column("dependency_strength", sa.String(), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_component_dependencies_source", "component_dependencies", ["org_id", "source_component_id"]
    )
    op.create_index(
        "ix_component_dependencies_target", "component_dependencies", ["org_id", "target_component_id"]
    )

    op.create_table(
        "compliance",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column("framework_name", sa.String(), nullable=False),
        sa.Column("compliance_score", sa.Integer(), nullable=False),
        sa.Column("passed_rules", sa.Integer(), nullable=False),
        sa.Column("total_rules", sa.Integer(), nullable=False),
        sa.Column("critical_violations", sa.Integer(), nullable=False),
        sa.Column("high_violations", sa.Integer(), nullable=False),
        sa.Column("medium_violations", sa.Integer(), nullable=False),
        sa.Column("low_violations", sa.Integer(), nullable=False),
        sa.Column("violations", postgresql.JSONB(), nullable=False),
        sa.Column("last_scanned", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_compliance_org_id", "compliance", ["org_id"])

    op.create_table(
        "technical_debt_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        # Null component marks an org-wide item.
        sa.Column(
            "component_id", sa.Integer(), sa.ForeignKey("metadata.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("component_name", sa.String(), nullable=True),
        sa.Column("component_type", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("impact", sa.Text(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("estimated_remediation_hours", sa.Integer(), nullable=False),
        sa.Column("tags", postgresql.JSONB(), nullable=False),
        sa.Column("assigned_to", sa.String(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_technical_debt_items_org_id", "technical_debt_items", ["org_id"])

    op.create_table(
        "release_impacts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column("release_name", sa.String(), nullable=False),
        sa.Column("release_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("risk_level", sa.String(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("affected_components", postgresql.JSONB(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_release_impacts_org_id", "release_impacts", ["org_id"])

    op.create_table(
        "data_dictionary_fields",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column("object_api_name", sa.String(), nullable=False),
        sa.Column("field_api_name", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("data_type", sa.String(), nullable=False),
        sa.Column("length", sa.Integer(), nullable=True),
        sa.Column("precision", sa.Integer(), nullable=True),
        sa.Column("scale", sa.Integer(), nullable=True),
        sa.Column("required", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("external_id", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("unique", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("user_description", sa.Text(), nullable=True),
        sa.Column("picklist_values", postgresql.JSONB(), nullable=True),
        sa.Column("reference_to", postgresql.JSONB(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint(
            "org_id", "object_api_name", "field_api_name", name="uq_data_dictionary_fields_field"
        ),
    )
    op.create_index("ix_data_dictionary_fields_org_id", "data_dictionary_fields", ["org_id"])

    op.create_table(
        "data_dictionary_changes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column(
            "field_id",
            sa.Integer(),
            sa.ForeignKey("data_dictionary_fields.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("object_api_name", sa.String(), nullable=False),
        sa.Column("field_api_name", sa.String(), nullable=False),
        sa.Column("change_type", sa.String(), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), server_default="pending", nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_data_dictionary_changes_field_id", "data_dictionary_changes", ["field_id"])
    op.create_index(
        "ix_data_dictionary_changes_org_status", "data_dictionary_changes", ["org_id", "status"]
    )

    op.create_table(
        "data_dictionary_audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _org_fk(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("object_api_name", sa.String(), nullable=True),
        sa.Column("field_api_name", sa.String(), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_data_dictionary_audit_log_org_id", "data_dictionary_audit_log", ["org_id"])


def downgrade() -> None:
    op.drop_index("ix_data_dictionary_audit_log_org_id", table_name="data_dictionary_audit_log")
    op.drop_table("data_dictionary_audit_log")
    op.drop_index("ix_data_dictionary_changes_org_status", table_name="data_dictionary_changes")
    op.drop_index("ix_data_dictionary_changes_field_id", table_name="data_dictionary_changes")
    op.drop_table("data_dictionary_changes")
    op.drop_index("ix_data_dictionary_fields_org_id", table_name="data_dictionary_fields")
    op.drop_table("data_dictionary_fields")
    op.drop_index("ix_release_impacts_org_id", table_name="release_impacts")
    op.drop_table("release_impacts")
    op.drop_index("ix_technical_debt_items_org_id", table_name="technical_debt_items")
    op.drop_table("technical_debt_items")
    op.drop_index("ix_compliance_org_id", table_name="compliance")
    op.drop_table("compliance")
    op.drop_index("ix_component_dependencies_target", table_name="component_dependencies")
    op.drop_index("ix_component_dependencies_source", table_name="component_dependencies")
    op.drop_table("component_dependencies")
    op.drop_index("ix_code_quality_org_type", table_name="code_quality")
    op.drop_table("code_quality")
    op.drop_index("ix_filter_templates_user_id", table_name="filter_templates")
    op.drop_table("filter_templates")
    op.drop_index("ix_issues_org_id", table_name="issues")
    op.drop_table("issues")
    op.drop_index("ix_saved_queries_org_id", table_name="saved_queries")
    op.drop_index("ix_saved_queries_user_id", table_name="saved_queries")
    op.drop_table("saved_queries")
    op.drop_index("ix_health_scores_org_id", table_name="health_scores")
    op.drop_table("health_scores")
    op.drop_index("ix_metadata_org_id", table_name="metadata")
    op.drop_table("metadata")
    op.drop_index("ix_salesforce_orgs_user_id", table_name="salesforce_orgs")
    op.drop_table("salesforce_orgs")
    op.drop_index("ix_api_keys_key_hash", table_name="api_keys")
    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("users")
