"""
BPM Form Repository.

Durable storage of forms, sync logs and approval history across two stores:

    - primary: the system of record. Every write must succeed; errors propagate.
    - secondary: a best-effort mirror for back-office reporting. Every write is
      attempted once, failures are logged and discarded.

Each operation opens its own short-lived session from the injected factories.
Create is idempotent on ``form_id``: a duplicate-key collision (two concurrent
first syncs of the same form) falls back to Update.

Only cancel() ever writes the cancellation fields; every other write decides
what to keep from the row as loaded in its own session.
"""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database.base import Base, utc_now
from modules.bpm_forms.core.exceptions import FormNotFoundError
from modules.bpm_forms.models import (
    EXTERNAL_FIELDS,
    IMMUTABLE_FIELDS,
    LOCAL_CANCEL_FIELDS,
    SYNC_STATE_FIELDS,
    BpmForm,
    BpmFormApprovalHistory,
    BpmFormSyncLog,
    FormStatus,
    FormType,
)
from modules.bpm_forms.services.results import (
    ALREADY_CANCELLED,
    FORM_NOT_FOUND,
    FormCancelRequest,
    FormCancelResult,
    FormDetails,
    FormQueryRequest,
    FormQueryResult,
)

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


def column_values(instance: Base, exclude: Sequence[str] = ("id",)) -> dict[str, Any]:
    """Mapped column values of any model instance, keyed by attribute name."""
    return {
        attr.key: getattr(instance, attr.key)
        for attr in instance.__mapper__.column_attrs
        if attr.key not in exclude
    }


class BpmFormRepository:
    """
    Dual-store repository for BPM forms.

    Args:
        primary: Session factory for the authoritative store.
        secondary: Session factory for the mirror store, or None to disable mirroring.
    """

    def __init__(
        self,
        primary: SessionFactory,
        secondary: Optional[SessionFactory] = None,
    ) -> None:
        self._primary = primary
        self._secondary = secondary

    @staticmethod
    async def _load(session: AsyncSession, form_id: str) -> Optional[BpmForm]:
        result = await session.execute(select(BpmForm).where(BpmForm.form_id == form_id))
        return result.scalar_one_or_none()

    # =========================================================================
    # Reads (primary store only)
    # =========================================================================

    async def get_by_id(self, form_id: str) -> Optional[BpmForm]:
        """
        Get a form by its external id.

        Returns:
            The form, or None when the primary store doesn't have it.
        """
        async with self._primary() as session:
            return await self._load(session, form_id)

    async def exists(self, form_id: str) -> bool:
        async with self._primary() as session:
            found = await session.scalar(select(BpmForm.id).where(BpmForm.form_id == form_id))
            return found is not None

    async def query(self, request: FormQueryRequest) -> FormQueryResult:
        """
        Filtered, paged form listing.

        Ordered by apply date then creation time, newest first.
        """
        request.normalized()
        conditions: list[ColumnElement[bool]] = []

        if request.form_id:
            conditions.append(BpmForm.form_id == request.form_id)
        if request.form_type:
            conditions.append(BpmForm.form_type == request.form_type)
        if request.applicant_id:
            conditions.append(BpmForm.applicant_id == request.applicant_id)
        if request.company_id:
            conditions.append(BpmForm.company_id == request.company_id)
        if request.status:
            conditions.append(BpmForm.status == request.status)
        if request.is_cancelled is not None:
            conditions.append(BpmForm.is_cancelled == request.is_cancelled)
        if request.apply_date_from:
            conditions.append(BpmForm.apply_date >= request.apply_date_from)
        if request.apply_date_to:
            conditions.append(BpmForm.apply_date <= request.apply_date_to)

        async with self._primary() as session:
            total = await session.scalar(
                select(func.count()).select_from(BpmForm).where(*conditions)
            )
            result = await session.execute(
                select(BpmForm)
                .where(*conditions)
                .order_by(BpmForm.apply_date.desc(), BpmForm.created_at.desc())
                .offset((request.page - 1) * request.page_size)
                .limit(request.page_size)
            )
            forms = list(result.scalars().all())

        return FormQueryResult(
            forms=forms,
            total_count=total or 0,
            page=request.page,
            page_size=request.page_size,
        )

    async def get_by_applicant(self, applicant_id: str, form_type: Optional[str] = None) -> list[BpmForm]:
        """All forms of one applicant, newest apply date first."""
        stmt = select(BpmForm).where(BpmForm.applicant_id == applicant_id)
        if form_type:
            stmt = stmt.where(BpmForm.form_type == form_type)

        async with self._primary() as session:
            result = await session.execute(stmt.order_by(BpmForm.apply_date.desc()))
            return list(result.scalars().all())

    async def get_cancellable_leave_forms(self, applicant_id: str) -> list[BpmForm]:
        """Approved, not yet cancelled leave forms of one applicant, newest apply date first."""
        stmt = (
            select(BpmForm)
            .where(
                BpmForm.applicant_id == applicant_id,
                BpmForm.form_type == FormType.LEAVE.value,
                BpmForm.status == FormStatus.APPROVED.value,
                BpmForm.is_cancelled.is_(False),
            )
            .order_by(BpmForm.apply_date.desc())
        )
        async with self._primary() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_form_with_details(self, form_id: str) -> Optional[FormDetails]:
        """
        A form together with its approval history.

        Returns:
            FormDetails, or None when the primary store doesn't have the form.
        """
        form = await self.get_by_id(form_id)
        if form is None:
            return None
        return FormDetails(form=form, approval_history=await self.get_approval_history(form_id))

    # =========================================================================
    # Writes
    # =========================================================================

    async def _insert(self, form: BpmForm) -> Optional[BpmForm]:
        """
        Insert into the primary store and mirror.

        Returns:
            The stored row, or None when a row with the same ``form_id``
            already exists (e.g. a concurrent first sync won the race).
        """
        now = utc_now()
        form.created_at = now
        form.updated_at = now
        values = column_values(form)

        try:
            async with self._primary() as session:
                row = BpmForm(**values)
                session.add(row)
                await session.commit()
        except IntegrityError:
            if await self.get_by_id(form.form_id) is None:
                raise
            logger.info(f"Form {form.form_id} created concurrently")
            return None

        logger.info(f"Created form {row.form_id} ({row.form_type})")
        await self._mirror_form(row)
        return row

    async def create(self, form: BpmForm) -> BpmForm:
        """
        Insert a new form into the primary store, then mirror it.

        A duplicate ``form_id`` is not an error: the call becomes an Update,
        which keeps the stored row's identity and cancellation state.

        Raises:
            SQLAlchemyError: Primary store failure.
        """
        row = await self._insert(form)
        if row is None:
            return await self.update(form)
        return row

    async def update(self, form: BpmForm) -> BpmForm:
        """
        Overwrite the stored row with ``form``, then mirror it.

        ``id``, ``created_at`` and the cancellation fields of the stored row are
        never changed here; only cancel() sets those.

        Raises:
            FormNotFoundError: The primary store has no row for ``form.form_id``.
            SQLAlchemyError: Primary store failure.
        """
        return await self._write(form, (*IMMUTABLE_FIELDS, *LOCAL_CANCEL_FIELDS))

    async def apply_external(self, form: BpmForm) -> BpmForm:
        """
        Write engine-sourced state onto the stored row.

        Like update(), plus: when the stored row is cancelled, its upstream sync
        bookkeeping is kept too, since the engine may not have seen the cancel.
        The decision is made on the row as loaded in the write session.
        """
        return await self._write(
            form,
            (*IMMUTABLE_FIELDS, *LOCAL_CANCEL_FIELDS),
            protected_if_cancelled=SYNC_STATE_FIELDS,
        )

    async def save_external(self, form: BpmForm) -> tuple[BpmForm, bool]:
        """
        Create-if-absent / apply-if-present for engine-sourced records.

        Returns:
            (saved form, True if this call inserted the row)
        """
        if not await self.exists(form.form_id):
            row = await self._insert(form)
            if row is not None:
                return row, True
        return await self.apply_external(form), False

    async def _write(
        self,
        form: BpmForm,
        protected: Sequence[str],
        protected_if_cancelled: Sequence[str] = (),
    ) -> BpmForm:
        async with self._primary() as session:
            row = await self._load(session, form.form_id)
            if row is None:
                raise FormNotFoundError(form.form_id)

            exclude = (*protected, *protected_if_cancelled) if row.is_cancelled else tuple(protected)
            for key, value in column_values(form, exclude=exclude).items():
                setattr(row, key, value)
            row.updated_at = utc_now()
            await session.commit()

        logger.info(f"Updated form {row.form_id} (status={row.status})")
        await self._mirror_form(row)
        return row

    async def create_or_update(self, form: BpmForm) -> BpmForm:
        """
        Create the form, or merge its engine-owned fields onto the stored row.

        Local-only fields of an existing row are untouched since they are not
        part of the merge set.
        """
        existing = await self.get_by_id(form.form_id)
        if existing is None:
            return await self.create(form)

        for key in EXTERNAL_FIELDS:
            setattr(existing, key, getattr(form, key))
        existing.last_sync_time = utc_now()
        return await self.update(existing)

    async def cancel(self, request: FormCancelRequest) -> FormCancelResult:
        """
        Mark a form cancelled locally.

        Returns:
            FORM_NOT_FOUND / ALREADY_CANCELLED failures without touching the row,
            otherwise success with the cancelled form.
        """
        async with self._primary() as session:
            form = await self._load(session, request.form_id)
            if form is None:
                return FormCancelResult.failure(request.form_id, FORM_NOT_FOUND, "Form not found")
            if form.is_cancelled:
                return FormCancelResult.failure(request.form_id, ALREADY_CANCELLED, "Form already cancelled")

            now = utc_now()
            form.is_cancelled = True
            form.cancel_reason = request.reason
            form.cancel_time = now
            form.cancelled_by = request.operator_id or None
            form.status = FormStatus.CANCELLED.value
            form.updated_at = now
            await session.commit()

        logger.info(f"Cancelled form {form.form_id} by {request.operator_id or 'unknown'}")
        await self._mirror_form(form)
        return FormCancelResult(
            success=True,
            message="Form cancelled",
            form_id=form.form_id,
            form=form,
            cancel_time=now,
        )

    # =========================================================================
    # Audit Trail (append-only, never blocks the caller)
    # =========================================================================

    async def log_sync(self, entry: BpmFormSyncLog) -> None:
        """Append a sync log entry. Failures are logged and swallowed."""
        if entry.sync_time is None:
            entry.sync_time = utc_now()
        values = column_values(entry)

        try:
            async with self._primary() as session:
                session.add(BpmFormSyncLog(**values))
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to write sync log for {entry.form_id}: {e}", exc_info=True)
            return

        await self._mirror_append(BpmFormSyncLog, values)

    async def add_approval_history(self, entry: BpmFormApprovalHistory) -> bool:
        """
        Append one approval step.

        Steps already stored for the same (form_id, sequence_no) are skipped.

        Returns:
            True if the step was written to the primary store.
        """
        if entry.created_at is None:
            entry.created_at = utc_now()
        values = column_values(entry)
        duplicate = (
            BpmFormApprovalHistory.form_id == entry.form_id,
            BpmFormApprovalHistory.sequence_no == entry.sequence_no,
        )

        try:
            async with self._primary() as session:
                found = await session.scalar(select(BpmFormApprovalHistory.id).where(*duplicate))
                if found is not None:
                    logger.debug(f"Approval step {entry.form_id}#{entry.sequence_no} already stored")
                    return False
                session.add(BpmFormApprovalHistory(**values))
                await session.commit()
        except Exception as e:
            logger.error(
                f"Failed to write approval history {entry.form_id}#{entry.sequence_no}: {e}",
                exc_info=True,
            )
            return False

        await self._mirror_append(BpmFormApprovalHistory, values, duplicate)
        return True

    async def get_sync_logs(self, form_id: str, limit: int = 10) -> list[BpmFormSyncLog]:
        """Newest sync log entries for a form; [] on read failure."""
        try:
            async with self._primary() as session:
                result = await session.execute(
                    select(BpmFormSyncLog)
                    .where(BpmFormSyncLog.form_id == form_id)
                    .order_by(BpmFormSyncLog.sync_time.desc(), BpmFormSyncLog.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except Exception as e:
            logger.error(f"Failed to read sync logs for {form_id}: {e}", exc_info=True)
            return []

    async def get_approval_history(self, form_id: str) -> list[BpmFormApprovalHistory]:
        """Approval steps of a form in sequence order; [] on read failure."""
        try:
            async with self._primary() as session:
                result = await session.execute(
                    select(BpmFormApprovalHistory)
                    .where(BpmFormApprovalHistory.form_id == form_id)
                    .order_by(BpmFormApprovalHistory.sequence_no)
                )
                return list(result.scalars().all())
        except Exception as e:
            logger.error(f"Failed to read approval history for {form_id}: {e}", exc_info=True)
            return []

    # =========================================================================
    # Secondary Store Mirroring
    # =========================================================================

    async def _mirror_form(self, form: BpmForm) -> None:
        """Upsert the form into the mirror. Never raises."""
        if self._secondary is None:
            return

        values = column_values(form)
        try:
            async with self._secondary() as session:
                mirror = await self._load(session, form.form_id)
                if mirror is None:
                    session.add(BpmForm(**values))
                else:
                    for key, value in values.items():
                        setattr(mirror, key, value)
                await session.commit()
        except Exception as e:
            logger.warning(f"Secondary store write failed for form {form.form_id}: {e}", exc_info=True)

    async def _mirror_append(
        self,
        model: type[Base],
        values: dict[str, Any],
        duplicate: Sequence[ColumnElement[bool]] = (),
    ) -> None:
        """Insert an audit row into the mirror. Never raises."""
        if self._secondary is None:
            return

        try:
            async with self._secondary() as session:
                if duplicate:
                    found = await session.scalar(select(model.id).where(*duplicate))
                    if found is not None:
                        return
                session.add(model(**values))
                await session.commit()
        except Exception as e:
            logger.warning(
                f"Secondary store write failed for {model.__tablename__} "
                f"({values.get('form_id')}): {e}",
                exc_info=True,
            )
