"""Bulk actions on tests: status change, tag add/remove, archive, delete."""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import CatalogueError, NotFound
from .models import PatientAssessmentTest, Tag, Test, TestTag, ValidationStatus

ACTION_STATUS = "status"
ACTION_TAGS_ADD = "tags:add"
ACTION_TAGS_REMOVE = "tags:remove"
ACTION_ARCHIVE = "archive"
ACTION_DELETE = "delete"

BULK_ACTIONS = (ACTION_STATUS, ACTION_TAGS_ADD, ACTION_TAGS_REMOVE, ACTION_ARCHIVE, ACTION_DELETE)


@dataclass
class BulkResult:
    action: str
    updated: List[uuid.UUID] = field(default_factory=list)
    archived: List[uuid.UUID] = field(default_factory=list)
    deleted: List[uuid.UUID] = field(default_factory=list)
    status: Optional[ValidationStatus] = None

    def to_payload(self) -> Dict[str, Any]:
        """Response body: only the partitions the action can produce."""
        if self.action == ACTION_DELETE:
            return {"archived": self.archived, "deleted": self.deleted}
        if self.action == ACTION_ARCHIVE:
            return {"archived": self.archived}
        if self.action == ACTION_STATUS:
            return {"updated": self.updated, "status": self.status.value}
        return {"updated": self.updated}


async def _existing_ids(session: AsyncSession, ids: List[uuid.UUID]) -> List[uuid.UUID]:
    result = await session.execute(select(Test.id).where(Test.id.in_(ids)))
    found = set(result.scalars())
    return [test_id for test_id in ids if test_id in found]


async def _set_status(session: AsyncSession, ids: List[uuid.UUID], status: ValidationStatus) -> None:
    if ids:
        await session.execute(update(Test).where(Test.id.in_(ids)).values(status=status))


async def _check_tag_ids(session: AsyncSession, tag_ids: List[uuid.UUID]) -> None:
    if not tag_ids:
        return
    result = await session.execute(select(Tag.id).where(Tag.id.in_(tag_ids)))
    found = set(result.scalars())
    missing = [str(tag_id) for tag_id in tag_ids if tag_id not in found]
    if missing:
        raise NotFound(f"Unknown tag id(s): {', '.join(missing)}")


async def run_bulk(
    session: AsyncSession,
    ids: Iterable[uuid.UUID],
    action: Optional[str] = None,
    *,
    status: Optional[ValidationStatus] = None,
    tag_ids: Optional[Iterable[uuid.UUID]] = None,
) -> BulkResult:
    """
    Apply one action to a set of tests.

    Unknown test ids are ignored, unknown tag ids raise ``NotFound``. With
    no action the tests are deleted, except those referenced by a patient
    assessment: these are archived instead, and the result lists both
    groups separately.

    Args:
        action: one of ``status``, ``tags:add``, ``tags:remove``,
            ``archive``, ``delete`` (the default)
        status: target status for the ``status`` action
        tag_ids: tags added or removed by the ``tags:*`` actions
    """
    action = action or ACTION_DELETE
    if action not in BULK_ACTIONS:
        raise CatalogueError(f"Unknown bulk action: {action}")

    ids = await _existing_ids(session, list(dict.fromkeys(ids)))
    result = BulkResult(action=action)

    if action == ACTION_STATUS:
        if status is None:
            raise CatalogueError("A status is required for the status action.")
        await _set_status(session, ids, status)
        result.updated = ids
        result.status = ValidationStatus(status)

    elif action in (ACTION_TAGS_ADD, ACTION_TAGS_REMOVE):
        tag_ids = list(dict.fromkeys(tag_ids or []))
        await _check_tag_ids(session, tag_ids)
        if ids and tag_ids:
            if action == ACTION_TAGS_ADD:
                existing = await session.execute(
                    select(TestTag.test_id, TestTag.tag_id).where(
                        TestTag.test_id.in_(ids), TestTag.tag_id.in_(tag_ids)
                    )
                )
                present = set(existing.all())
                rows = [
                    {"test_id": test_id, "tag_id": tag_id}
                    for test_id in ids
                    for tag_id in tag_ids
                    if (test_id, tag_id) not in present
                ]
                if rows:
                    await session.execute(TestTag.__table__.insert(), rows)
            else:
                await session.execute(
                    delete(TestTag).where(TestTag.test_id.in_(ids), TestTag.tag_id.in_(tag_ids))
                )
        result.updated = ids

    elif action == ACTION_ARCHIVE:
        await _set_status(session, ids, ValidationStatus.archived)
        result.archived = ids

    else:
        used = await session.execute(
            select(PatientAssessmentTest.test_id).where(PatientAssessmentTest.test_id.in_(ids)).distinct()
        )
        referenced = set(used.scalars())
        result.archived = [test_id for test_id in ids if test_id in referenced]
        result.deleted = [test_id for test_id in ids if test_id not in referenced]

        await _set_status(session, result.archived, ValidationStatus.archived)
        if result.deleted:
            await session.execute(delete(Test).where(Test.id.in_(result.deleted)))

    logger.info(
        f"Bulk {action}: {len(ids)} test(s), updated={len(result.updated)} "
        f"archived={len(result.archived)} deleted={len(result.deleted)}"
    )
    return result
