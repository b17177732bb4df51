"""OSHA regulation lookup and violation linking.

Search uses PostgreSQL full-text ranking when available and falls back to a
case-insensitive substring match on other databases.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

import structlog
from sqlalchemy import Float, cast, func, literal, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.db.models import RegulationModel, ViolationRegulationModel
from lukaut.errors import conflict, not_found
from lukaut.models import DEFAULT_PAGE_SIZE, Page
from lukaut.utils.validation import clean
from lukaut.violations.service import get_violation

logger = structlog.get_logger(__name__)

SEED_FILE = Path(__file__).parent / "data" / "osha_1926.json"
MANUAL_LINK_EXPLANATION = "Manually added by inspector"


@dataclass(slots=True)
class RegulationMatch:
    regulation: RegulationModel
    rank: float


def _is_postgres(session: AsyncSession) -> bool:
    return session.get_bind().dialect.name == "postgresql"


async def get_regulation(session: AsyncSession, regulation_id: UUID) -> RegulationModel:
    regulation = await session.get(RegulationModel, regulation_id)
    if regulation is None:
        raise not_found("Regulation", regulation_id, op="regulations.get")
    return regulation


async def list_categories(session: AsyncSession) -> list[str]:
    rows = await session.execute(
        select(RegulationModel.category).distinct().order_by(RegulationModel.category)
    )
    return list(rows.scalars())


async def list_regulations(
    session: AsyncSession,
    category: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page[RegulationModel]:
    conditions = []
    if category := clean(category):
        conditions.append(RegulationModel.category == category)

    total = await session.scalar(
        select(func.count()).select_from(RegulationModel).where(*conditions)
    ) or 0
    result: Page[RegulationModel] = Page(items=[], total=total, page=page, page_size=page_size)
    rows = await session.execute(
        select(RegulationModel)
        .where(*conditions)
        .order_by(RegulationModel.standard_number)
        .limit(page_size)
        .offset(result.offset)
    )
    result.items = list(rows.scalars())
    return result


async def search_regulations(
    session: AsyncSession,
    q: str,
    category: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page[RegulationMatch]:
    """Full-text search, best matches first. A blank query lists by category."""
    q = clean(q)
    if not q:
        listing = await list_regulations(session, category=category, page=page, page_size=page_size)
        return Page(
            items=[RegulationMatch(regulation=r, rank=0.0) for r in listing.items],
            total=listing.total,
            page=listing.page,
            page_size=page_size,
        )

    if _is_postgres(session):
        document = func.to_tsvector(
            "english",
            RegulationModel.standard_number
            + " "
            + RegulationModel.title
            + " "
            + RegulationModel.full_text
            + " "
            + func.coalesce(RegulationModel.summary, ""),
        )
        query = func.plainto_tsquery("english", q)
        match = document.op("@@")(query)
        rank = func.ts_rank(document, query)
    else:
        pattern = f"%{q.lower()}%"
        match = or_(
            func.lower(RegulationModel.standard_number).like(pattern),
            func.lower(RegulationModel.title).like(pattern),
            func.lower(RegulationModel.full_text).like(pattern),
            func.lower(func.coalesce(RegulationModel.summary, "")).like(pattern),
        )
        rank = cast(literal(1.0), Float)

    conditions = [match]
    if category := clean(category):
        conditions.append(RegulationModel.category == category)

    total = await session.scalar(
        select(func.count()).select_from(RegulationModel).where(*conditions)
    ) or 0
    result: Page[RegulationMatch] = Page(items=[], total=total, page=page, page_size=page_size)
    rows = await session.execute(
        select(RegulationModel, rank.label("rank"))
        .where(*conditions)
        .order_by(rank.desc(), RegulationModel.standard_number)
        .limit(page_size)
        .offset(result.offset)
    )
    result.items = [RegulationMatch(regulation=r, rank=float(score)) for r, score in rows.all()]
    return result


async def link_regulation(
    session: AsyncSession, violation_id: UUID, regulation_id: UUID, user_id: UUID
) -> ViolationRegulationModel:
    """Attach a regulation to a violation the user owns."""
    op = "regulations.link"
    await get_violation(session, violation_id, user_id)
    await get_regulation(session, regulation_id)

    existing = await session.scalar(
        select(ViolationRegulationModel).where(
            ViolationRegulationModel.violation_id == violation_id,
            ViolationRegulationModel.regulation_id == regulation_id,
        )
    )
    if existing is not None:
        raise conflict("Regulation is already linked to this violation", op=op)

    has_primary = await session.scalar(
        select(func.count())
        .select_from(ViolationRegulationModel)
        .where(
            ViolationRegulationModel.violation_id == violation_id,
            ViolationRegulationModel.is_primary.is_(True),
        )
    )
    link = ViolationRegulationModel(
        violation_id=violation_id,
        regulation_id=regulation_id,
        relevance_score=1.0,
        ai_explanation=MANUAL_LINK_EXPLANATION,
        is_primary=not has_primary,
    )
    session.add(link)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise conflict("Regulation is already linked to this violation", op=op) from exc

    logger.info("regulation_linked", violation_id=str(violation_id), regulation_id=str(regulation_id))
    return link


async def unlink_regulation(
    session: AsyncSession, violation_id: UUID, regulation_id: UUID, user_id: UUID
) -> None:
    op = "regulations.unlink"
    await get_violation(session, violation_id, user_id)
    link = await session.scalar(
        select(ViolationRegulationModel).where(
            ViolationRegulationModel.violation_id == violation_id,
            ViolationRegulationModel.regulation_id == regulation_id,
        )
    )
    if link is None:
        raise not_found("Regulation link", regulation_id, op=op)
    await session.delete(link)
    await session.flush()
    logger.info("regulation_unlinked", violation_id=str(violation_id), regulation_id=str(regulation_id))


async def seed_regulations(session: AsyncSession, path: Path = SEED_FILE) -> int:
    """Insert reference regulations that are not present yet; returns the number added."""
    records = json.loads(path.read_text(encoding="utf-8"))
    existing = set(
        (await session.execute(select(RegulationModel.standard_number))).scalars()
    )
    added = 0
    for record in records:
        if record["standard_number"] in existing:
            continue
        session.add(RegulationModel(**record))
        added += 1
    await session.flush()
    logger.info("regulations_seeded", added=added, total=len(records))
    return added
