from __future__ import annotations

import argparse
import asyncio
import json
import sys

from sfinsight.core.logging import configure_logging
from sfinsight.persistence.db import SessionLocal
from sfinsight.persistence.repos import orgs as orgs_repo
from sfinsight.providers.salesforce.connector import SalesforceConnector
from sfinsight.services.analytics.runner import run_analysis
from sfinsight.services.metadata_sync import MetadataSyncService


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a metadata sync for one connected org")
    parser.add_argument("--org-id", type=int, required=True, help="Org identifier")
    parser.add_argument("--analyze", action="store_true", help="Recompute analytics after the sync")
    return parser


async def _sync(args: argparse.Namespace) -> int:
    async with SessionLocal() as session:
        org = await orgs_repo.get_org(session, args.org_id)
        if org is None:
            print(f"Org {args.org_id} not found", file=sys.stderr)
            return 2
        client = await SalesforceConnector().for_org(org)
        result = await MetadataSyncService(session, client).sync(org)
        await session.commit()
        print(json.dumps({"sync": result.to_dict()}, indent=2))

        if args.analyze:
            _, summary = await run_analysis(session, org)
            await session.commit()
            print(json.dumps({"analysis": summary.to_dict()}, indent=2))
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_sync(args))
    except Exception as exc:  # noqa: BLE001 - surface sync failures clearly
        print(f"sync_org failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
