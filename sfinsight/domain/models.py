from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Use JSONB on Postgres and plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String, unique=True)
    email: Mapped[str] = mapped_column(String, unique=True)
    name: Mapped[str] = mapped_column(String)
    # Salted scrypt hash; plaintext passwords are never stored.
    password_hash: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    # Keep a short prefix for display without exposing the secret.
    key_prefix: Mapped[str] = mapped_column(String)
    # Store only the hashed key to avoid plaintext credentials at rest.
    key_hash: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SalesforceOrg(Base):
    __tablename__ = "salesforce_orgs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String)
    domain: Mapped[str] = mapped_column(String)
    instance_url: Mapped[str] = mapped_column(String)
    # production | sandbox
    type: Mapped[str] = mapped_column(String)
    # token | credentials
    auth_method: Mapped[str] = mapped_column(String, default="token")
    username: Mapped[str | None] = mapped_column(String, nullable=True)
    # Credentials are AES-GCM encrypted; see services.crypto.credentials.
    access_token_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    password_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    security_token_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    connection_status: Mapped[str] = mapped_column(String, default="idle")
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Metadata(Base):
    __tablename__ = "metadata"
    __table_args__ = (
        UniqueConstraint("org_id", "type", "name", name="uq_metadata_org_type_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    # CustomObject, ApexClass, ApexTrigger, Flow, ...
    type: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class HealthScore(Base):
    __tablename__ = "health_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    overall_score: Mapped[int] = mapped_column(Integer)
    security_score: Mapped[int] = mapped_column(Integer)
    data_model_score: Mapped[int] = mapped_column(Integer)
    automation_score: Mapped[int] = mapped_column(Integer)
    apex_score: Mapped[int] = mapped_column(Integer)
    ui_component_score: Mapped[int] = mapped_column(Integer)
    complexity_score: Mapped[int] = mapped_column(Integer)
    performance_risk: Mapped[int] = mapped_column(Integer)
    technical_debt: Mapped[int] = mapped_column(Integer)
    metadata_volume: Mapped[int] = mapped_column(Integer)
    customization_level: Mapped[int] = mapped_column(Integer)
    issues: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SavedQuery(Base):
    __tablename__ = "saved_queries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String)
    query: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text)
    # critical | warning | info
    severity: Mapped[str] = mapped_column(String)
    type: Mapped[str] = mapped_column(String)
    # open | ignored | resolved
    status: Mapped[str] = mapped_column(String, default="open", server_default="open")
    related_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class FilterTemplate(Base):
    __tablename__ = "filter_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String)
    filters: Mapped[dict[str, Any]] = mapped_column(JSONType)
    is_shared: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CodeQuality(Base):
    __tablename__ = "code_quality"
    __table_args__ = (Index("ix_code_quality_org_type", "org_id", "component_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"))
    component_id: Mapped[int] = mapped_column(Integer, ForeignKey("metadata.id", ondelete="CASCADE"))
    component_name: Mapped[str] = mapped_column(String)
    component_type: Mapped[str] = mapped_column(String)
    quality_score: Mapped[int] = mapped_column(Integer)
    complexity_score: Mapped[int] = mapped_column(Integer)
    test_coverage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    best_practices_score: Mapped[int] = mapped_column(Integer)
    security_score: Mapped[int] = mapped_column(Integer)
    performance_score: Mapped[int] = mapped_column(Integer)
    issues_count: Mapped[int] = mapped_column(Integer, default=0)
    issues: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    complexity_metrics: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ComponentDependency(Base):
    __tablename__ = "component_dependencies"
    __table_args__ = (
        Index("ix_component_dependencies_source", "org_id", "source_component_id"),
        Index("ix_component_dependencies_target", "org_id", "target_component_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"))
    source_component_id: Mapped[int] = mapped_column(Integer, ForeignKey("metadata.id", ondelete="CASCADE"))
    source_component_name: Mapped[str] = mapped_column(String)
    source_component_type: Mapped[str] = mapped_column(String)
    target_component_id: Mapped[int] = mapped_column(Integer, ForeignKey("metadata.id", ondelete="CASCADE"))
    target_component_name: Mapped[str] = mapped_column(String)
    target_component_type: Mapped[str] = mapped_column(String)
    dependency_type: Mapped[str] = mapped_column(String)
    # weak | medium | strong
    dependency_strength: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Compliance(Base):
    __tablename__ = "compliance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    framework_name: Mapped[str] = mapped_column(String)
    compliance_score: Mapped[int] = mapped_column(Integer)
    passed_rules: Mapped[int] = mapped_column(Integer)
    total_rules: Mapped[int] = mapped_column(Integer)
    critical_violations: Mapped[int] = mapped_column(Integer, default=0)
    high_violations: Mapped[int] = mapped_column(Integer, default=0)
    medium_violations: Mapped[int] = mapped_column(Integer, default=0)
    low_violations: Mapped[int] = mapped_column(Integer, default=0)
    violations: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    last_scanned: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class TechnicalDebtItem(Base):
    __tablename__ = "technical_debt_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    # Null component means an org-wide item.
    component_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("metadata.id", ondelete="SET NULL"), nullable=True
    )
    component_name: Mapped[str | None] = mapped_column(String, nullable=True)
    component_type: Mapped[str | None] = mapped_column(String, nullable=True)
    category: Mapped[str] = mapped_column(String)
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text)
    impact: Mapped[str] = mapped_column(Text)
    # 1 (highest) .. 5
    priority: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String, default="Identified")
    estimated_remediation_hours: Mapped[int] = mapped_column(Integer)
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    assigned_to: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ReleaseImpact(Base):
    __tablename__ = "release_impacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    release_name: Mapped[str] = mapped_column(String)
    release_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # low | medium | high
    risk_level: Mapped[str] = mapped_column(String)
    summary: Mapped[str] = mapped_column(Text)
    affected_components: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class DataDictionaryField(Base):
    __tablename__ = "data_dictionary_fields"
    __table_args__ = (
        UniqueConstraint(
            "org_id", "object_api_name", "field_api_name", name="uq_data_dictionary_fields_field"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    object_api_name: Mapped[str] = mapped_column(String)
    field_api_name: Mapped[str] = mapped_column(String)
    label: Mapped[str] = mapped_column(String)
    data_type: Mapped[str] = mapped_column(String)
    length: Mapped[int | None] = mapped_column(Integer, nullable=True)
    precision: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scale: Mapped[int | None] = mapped_column(Integer, nullable=True)
    required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    external_id: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    unique: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Description as deployed in Salesforce.
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Local annotation; becomes the Salesforce description once deployed.
    user_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    picklist_values: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    reference_to: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DataDictionaryChange(Base):
    __tablename__ = "data_dictionary_changes"
    __table_args__ = (Index("ix_data_dictionary_changes_org_status", "org_id", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"))
    field_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("data_dictionary_fields.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"))
    object_api_name: Mapped[str] = mapped_column(String)
    field_api_name: Mapped[str] = mapped_column(String)
    # update | delete
    change_type: Mapped[str] = mapped_column(String)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    # pending | approved | rejected | applied
    status: Mapped[str] = mapped_column(String, default="pending", server_default="pending")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class DataDictionaryAuditLog(Base):
    __tablename__ = "data_dictionary_audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("salesforce_orgs.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String)
    object_api_name: Mapped[str | None] = mapped_column(String, nullable=True)
    field_api_name: Mapped[str | None] = mapped_column(String, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
