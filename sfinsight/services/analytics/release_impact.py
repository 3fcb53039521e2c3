from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from sfinsight.core.errors import ValidationFailedError
from sfinsight.domain.models import ReleaseImpact, SalesforceOrg
from sfinsight.persistence.repos import analysis as analysis_repo
from sfinsight.persistence.repos import metadata as metadata_repo


logger = logging.getLogger(__name__)

# Total number of dependents at which a release is considered risky.
HIGH_RISK_DEPENDENTS = 10
MEDIUM_RISK_DEPENDENTS = 3


def risk_level(total_dependents: int) -> str:
    if total_dependents >= HIGH_RISK_DEPENDENTS:
        return "high"
    if total_dependents >= MEDIUM_RISK_DEPENDENTS:
        return "medium"
    return "low"


def _default_summary(release_name: str, affected: list[dict[str, Any]], level: str) -> str:
    dependents = sum(item["dependents"] for item in affected)
    return (
        f"{release_name} changes {len(affected)} component(s) with {dependents} "
        f"dependent component(s); {level} risk"
    )


async def assess_release(
    session: AsyncSession,
    org: SalesforceOrg,
    *,
    release_name: str,
    component_ids: Iterable[int],
    release_date: datetime | None = None,
    summary: str | None = None,
) -> ReleaseImpact:
    """Record the blast radius of changing ``component_ids`` in one release."""
    if not release_name or not release_name.strip():
        raise ValidationFailedError(["Release name is required"])
    ids = list(dict.fromkeys(component_ids))
    if not ids:
        raise ValidationFailedError(["At least one component is required"])

    affected: list[dict[str, Any]] = []
    missing: list[str] = []
    for component_id in ids:
        component = await metadata_repo.get_metadata(session, org.id, component_id)
        if component is None:
            missing.append(f"Component {component_id} not found")
            continue
        dependents = await analysis_repo.list_component_dependencies(
            session, org.id, component_id, reverse=True
        )
        affected.append(
            {
                "id": component.id,
                "name": component.name,
                "type": component.type,
                "dependents": len(dependents),
                "dependentComponents": [dep.source_component_name for dep in dependents],
            }
        )
    if missing:
        raise ValidationFailedError(missing)

    level = risk_level(sum(item["dependents"] for item in affected))
    impact = ReleaseImpact(
        org_id=org.id,
        release_name=release_name.strip(),
        release_date=release_date,
        risk_level=level,
        summary=summary or _default_summary(release_name.strip(), affected, level),
        affected_components=affected,
    )
    await analysis_repo.add_release_impact(session, impact)
    logger.info("release_impact_assessed org_id=%s release=%s risk=%s", org.id, impact.release_name, level)
    return impact
