"""Seed database from a JSON fixture.

Usage:
    python -m lead_router.tools.seed_db
    python -m lead_router.tools.seed_db --file data/seed.json
    python -m lead_router.tools.seed_db --drop  # drop existing data first

The fixture holds three lists: ``users``, ``leads`` and ``rules``. Rules use
the same camelCase shape as the ``/api/assignment-rules`` endpoint and go
through the same validation.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_router.adapters.persistence.database import async_session_factory
from lead_router.adapters.persistence.models import (
    AssignmentRuleModel,
    AssignmentStateModel,
    AuditEntryModel,
    LeadActivityModel,
    LeadModel,
    RotationCursorModel,
    SalesUserModel,
)
from lead_router.adapters.persistence.repositories import (
    SqlRuleRepository,
    SqlUnitOfWork,
    SqlUserDirectory,
)
from lead_router.application.use_cases.manage_rules import ManageRulesUseCase
from lead_router.domain.exceptions import RuleValidationError
from lead_router.infrastructure.api.routes_rules import RuleIn

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")
logger = logging.getLogger(__name__)


def _parse_datetime(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        logger.warning("Could not parse datetime: %s", raw)
        return None


async def _drop_data(session: AsyncSession) -> None:
    """Delete all data in correct order (respecting FK constraints)."""
    for model in [
        AuditEntryModel,
        AssignmentStateModel,
        RotationCursorModel,
        LeadActivityModel,
        LeadModel,
        AssignmentRuleModel,
    ]:
        await session.execute(delete(model))
    # Managers are referenced by their reports
    await session.execute(SalesUserModel.__table__.update().values(reports_to_id=None))
    await session.execute(delete(SalesUserModel))
    await session.commit()
    logger.info("Existing data dropped")


async def _seed_users(session: AsyncSession, rows: list[dict]) -> int:
    # Insert without the hierarchy first, then link managers
    for row in rows:
        session.add(
            SalesUserModel(
                id=str(row["id"]),
                name=row.get("name") or str(row["id"]),
                role=row.get("role", "sales_rep"),
                branch_id=row.get("branchId"),
                is_active=row.get("isActive", True),
                daily_lead_quota=row.get("dailyLeadQuota"),
            )
        )
    await session.flush()

    for row in rows:
        manager_id = row.get("reportsTo")
        if manager_id:
            user = await session.get(SalesUserModel, str(row["id"]))
            user.reports_to_id = str(manager_id)
    await session.flush()
    return len(rows)


async def _seed_leads(session: AsyncSession, rows: list[dict]) -> int:
    for row in rows:
        address = row.get("address") or {}
        details = row.get("sourceDetails") or {}
        created_at = _parse_datetime(row.get("createdAt"))
        lead = LeadModel(
            id=str(row["id"]),
            entity=row.get("entity", "lead"),
            source=row.get("source"),
            campaign_name=details.get("campaignName"),
            country=address.get("country"),
            state=address.get("state"),
            industry=row.get("industry"),
            lead_score=row.get("leadScore"),
            branch_id=row.get("branchId"),
            status=row.get("status", "open"),
            closed_at=_parse_datetime(row.get("closedAt")),
        )
        if created_at is not None:
            lead.created_at = created_at
        session.add(lead)
    await session.flush()
    return len(rows)


async def _seed_rules(session: AsyncSession, rows: list[dict]) -> int:
    uc = ManageRulesUseCase(
        rule_repo=SqlRuleRepository(session),
        uow=SqlUnitOfWork(session),
        directory=SqlUserDirectory(session),
    )
    created = 0
    for row in rows:
        try:
            rule = RuleIn.model_validate(row).to_domain(row.get("id"))
            await uc.create(rule)
            created += 1
        except (ValidationError, RuleValidationError) as e:
            logger.error("Skipping rule %s: %s", row.get("name", "?"), e)
    return created


async def seed(fixture: Path, drop: bool = False) -> dict[str, int]:
    """Load users, leads and rules from ``fixture``. Returns row counts."""
    data = json.loads(fixture.read_text(encoding="utf-8"))

    async with async_session_factory() as session:
        if drop:
            await _drop_data(session)

        counts = {
            "users": await _seed_users(session, data.get("users", [])),
            "leads": await _seed_leads(session, data.get("leads", [])),
        }
        await session.commit()
        # Rules commit one by one through the use case
        counts["rules"] = await _seed_rules(session, data.get("rules", []))

    logger.info("Seed complete: %s", counts)
    return counts


async def _verify_data() -> None:
    """Print sanity checks after seeding."""
    async with async_session_factory() as session:
        users = (await session.execute(select(SalesUserModel))).scalars().all()
        leads = (await session.execute(select(func.count()).select_from(LeadModel))).scalar()
        rules = (
            await session.execute(
                select(AssignmentRuleModel).order_by(
                    AssignmentRuleModel.priority, AssignmentRuleModel.created_at
                )
            )
        ).scalars().all()

        print(f"\n{'='*50}")
        print("SEED VERIFICATION")
        print(f"{'='*50}")
        print(f"Users: {len(users)}")
        print(f"Leads: {leads}")
        print(f"Rules: {len(rules)}")

        roles: dict[str, int] = {}
        for u in users:
            roles[u.role] = roles.get(u.role, 0) + 1
        print(f"Role distribution: {roles}")

        for r in rules:
            rotation = f"rotate after {r.time_limit_minutes}m" if r.enable_rotation else "no rotation"
            print(f"  [{r.priority}] {r.name} -> {r.distribution_type} ({rotation})")
        print(f"{'='*50}\n")


def main():
    parser = argparse.ArgumentParser(description="Seed Lead Router database from a JSON fixture")
    parser.add_argument(
        "--file", type=str, default="data/seed.json",
        help="JSON fixture with users, leads and rules (default: data/seed.json)",
    )
    parser.add_argument(
        "--drop", action="store_true",
        help="Drop existing data before seeding",
    )
    parser.add_argument(
        "--verify-only", action="store_true",
        help="Only run verification, don't seed",
    )
    args = parser.parse_args()

    fixture = Path(args.file)
    if not args.verify_only and not fixture.exists():
        logger.error("Fixture not found: %s", fixture)
        sys.exit(1)

    if args.verify_only:
        asyncio.run(_verify_data())
    else:
        async def run_all():
            await seed(fixture, drop=args.drop)
            await _verify_data()
        asyncio.run(run_all())


if __name__ == "__main__":
    main()
