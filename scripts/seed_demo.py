from __future__ import annotations

import asyncio
import sys

from sfinsight.core.config import get_settings
from sfinsight.core.logging import configure_logging
from sfinsight.persistence.db import SessionLocal
from sfinsight.persistence.repos import orgs as orgs_repo
from sfinsight.persistence.repos import users as users_repo
from sfinsight.providers.salesforce.connector import SalesforceConnector
from sfinsight.providers.salesforce.demo import DEMO_INSTANCE_URL, DEMO_SESSION_ID
from sfinsight.services.analytics.runner import run_analysis
from sfinsight.services.auth.passwords import hash_password
from sfinsight.services.org_connection import ConnectOrgRequest, OrgConnector


DEMO_USERNAME = "demo"
DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "demo-password"
DEMO_ORG_NAME = "Demo Org"


async def seed_demo() -> int:
    # The demo org always reads from the bundled sample data, whatever DEMO_MODE says.
    settings = get_settings().model_copy(update={"demo_mode": True})
    async with SessionLocal() as session:
        user = await users_repo.get_by_username(session, DEMO_USERNAME)
        if user is None:
            user = await users_repo.create_user(
                session,
                username=DEMO_USERNAME,
                email=DEMO_EMAIL,
                name="Demo User",
                password_hash=hash_password(DEMO_PASSWORD),
            )
            await session.commit()

        existing = [org for org in await orgs_repo.list_orgs_for_user(session, user.id) if org.name == DEMO_ORG_NAME]
        if existing:
            print("Demo org already seeded; skipping.")
            return 0

        connector = SalesforceConnector(settings)
        result = await OrgConnector(session, connector, settings).connect(
            user_id=user.id,
            request=ConnectOrgRequest(
                name=DEMO_ORG_NAME,
                auth_method="token",
                access_token=DEMO_SESSION_ID,
                instance_url=DEMO_INSTANCE_URL,
            ),
        )
        _, summary = await run_analysis(session, result.org)
        await session.commit()

    print(f"Seeded demo org {result.org.id} for user '{DEMO_USERNAME}' (password '{DEMO_PASSWORD}').")
    print(f"  overall health score: {summary.overall_score}")
    return 0


def main() -> int:
    configure_logging()
    try:
        return asyncio.run(seed_demo())
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
