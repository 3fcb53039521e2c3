from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.domain.models import HealthScore, SalesforceOrg
from sfinsight.persistence.repos import analysis as analysis_repo
from sfinsight.persistence.repos import data_dictionary as dictionary_repo
from sfinsight.persistence.repos import issues as issues_repo
from sfinsight.persistence.repos import metadata as metadata_repo
from sfinsight.services.analytics.code_quality import build_code_quality_rows
from sfinsight.services.analytics.compliance import build_compliance_rows
from sfinsight.services.analytics.dependencies import derive_dependencies
from sfinsight.services.analytics.findings import attach_field_documentation, collect_findings
from sfinsight.services.analytics.health import score_org, to_health_score, to_issue_rows
from sfinsight.services.analytics.technical_debt import derive_technical_debt


logger = logging.getLogger(__name__)


@dataclass
class AnalysisSummary:
    health_score_id: int
    overall_score: int
    components_scanned: int
    dependencies: int
    compliance_frameworks: int
    technical_debt_items: int
    issues: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def run_analysis(session: AsyncSession, org: SalesforceOrg) -> tuple[HealthScore, AnalysisSummary]:
    """Recompute every analysis for ``org`` from its synced metadata.

    Replaces code quality, dependencies, compliance, identified technical
    debt and open issues, and appends a new health score. The caller commits.
    """
    start = time.monotonic()
    metadata = await metadata_repo.list_metadata(session, org.id)
    code_quality = await analysis_repo.replace_code_quality(
        session, org.id, build_code_quality_rows(org.id, metadata)
    )
    dependencies = await analysis_repo.replace_dependencies(session, org.id, derive_dependencies(org.id, metadata))

    findings = collect_findings(metadata, code_quality)
    attach_field_documentation(findings, await dictionary_repo.list_fields(session, org.id))
    report = score_org(findings)

    compliance = await analysis_repo.replace_compliance(session, org.id, build_compliance_rows(org.id, findings))
    in_flight = [
        (item.component_id, item.title)
        for item in await analysis_repo.list_technical_debt(session, org.id)
        if item.status != "Identified"
    ]
    debt = await analysis_repo.replace_technical_debt(
        session, org.id, derive_technical_debt(org.id, code_quality, findings, keep=in_flight)
    )
    issues = await issues_repo.replace_open_issues(session, org.id, to_issue_rows(org.id, report))
    score = await analysis_repo.add_health_score(session, to_health_score(org.id, report))

    summary = AnalysisSummary(
        health_score_id=score.id,
        overall_score=score.overall_score,
        components_scanned=len(code_quality),
        dependencies=len(dependencies),
        compliance_frameworks=len(compliance),
        technical_debt_items=len(debt),
        issues=len(issues),
    )
    logger.info(
        "org_analysis_completed org_id=%s overall=%s components=%s latency_ms=%.1f",
        org.id,
        score.overall_score,
        summary.components_scanned,
        (time.monotonic() - start) * 1000.0,
    )
    return score, summary
