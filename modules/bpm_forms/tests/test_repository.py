"""
Tests for the dual-store BPM form repository.

Run against real SQLite stores so commit, uniqueness and mirroring behave
as they do in production.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from unittest.mock import AsyncMock, MagicMock, patch

from modules.bpm_forms.core.exceptions import FormNotFoundError
from modules.bpm_forms.models import (
    BpmForm,
    BpmFormApprovalHistory,
    BpmFormSyncLog,
    FormStatus,
)
from modules.bpm_forms.services.repository import BpmFormRepository
from modules.bpm_forms.services.results import (
    ALREADY_CANCELLED,
    FORM_NOT_FOUND,
    FormCancelRequest,
    FormQueryRequest,
)


def make_form(form_id: str, **overrides) -> BpmForm:
    values = {
        "form_id": form_id,
        "form_code": "PI_LEAVE_001",
        "form_type": "LEAVE",
        "applicant_id": "E100",
        "company_id": "C01",
        "status": FormStatus.PENDING.value,
        "apply_date": datetime(2026, 3, 1, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return BpmForm(**values)


def make_log(form_id: str, status: str = "SUCCESS", when: datetime | None = None) -> BpmFormSyncLog:
    return BpmFormSyncLog(
        form_id=form_id,
        sync_type="FETCH",
        sync_direction="IN",
        sync_status=status,
        sync_time=when,
    )


async def count_rows(factory, model, form_id: str) -> int:
    async with factory() as session:
        return await session.scalar(
            select(func.count()).select_from(model).where(model.form_id == form_id)
        )


class TestCreateAndRead:

    @pytest.mark.asyncio
    async def test_create_persists_and_mirrors(self, repository, secondary_factory):
        created = await repository.create(make_form("LEAVE-1"))

        assert created.id is not None
        stored = await repository.get_by_id("LEAVE-1")
        assert stored.applicant_id == "E100"
        assert stored.created_at is not None
        assert await repository.exists("LEAVE-1") is True
        assert await count_rows(secondary_factory, BpmForm, "LEAVE-1") == 1

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, repository):
        assert await repository.get_by_id("NOPE") is None
        assert await repository.exists("NOPE") is False

    @pytest.mark.asyncio
    async def test_duplicate_create_becomes_update(self, repository, primary_factory):
        first = await repository.create(make_form("LEAVE-1"))

        second = await repository.create(make_form("LEAVE-1", status=FormStatus.APPROVED.value))

        assert second.id == first.id
        assert second.status == FormStatus.APPROVED.value
        assert await count_rows(primary_factory, BpmForm, "LEAVE-1") == 1

    @pytest.mark.asyncio
    async def test_duplicate_create_keeps_local_cancellation(self, repository):
        await repository.create(make_form("LEAVE-1"))
        await repository.cancel(FormCancelRequest(form_id="LEAVE-1", reason="sick", operator_id="E100"))

        merged = await repository.create(make_form("LEAVE-1", status=FormStatus.PROCESSING.value))

        assert merged.is_cancelled is True
        assert merged.cancel_reason == "sick"
        assert merged.cancelled_by == "E100"

    @pytest.mark.asyncio
    async def test_save_external_reports_insert(self, repository):
        saved, is_new = await repository.save_external(make_form("LEAVE-1"))

        assert is_new is True
        assert saved.id is not None

        again, is_new = await repository.save_external(make_form("LEAVE-1", status=FormStatus.APPROVED.value))

        assert is_new is False
        assert again.id == saved.id
        assert again.status == FormStatus.APPROVED.value

    @pytest.mark.asyncio
    async def test_save_external_losing_insert_race_reports_update(self, repository, primary_factory):
        first = await repository.create(make_form("LEAVE-1"))

        # Both writers saw no row; the other one inserted first
        with patch.object(repository, "exists", AsyncMock(return_value=False)):
            saved, is_new = await repository.save_external(
                make_form("LEAVE-1", status=FormStatus.PROCESSING.value)
            )

        assert is_new is False
        assert saved.id == first.id
        assert saved.status == FormStatus.PROCESSING.value
        assert await count_rows(primary_factory, BpmForm, "LEAVE-1") == 1

    @pytest.mark.asyncio
    async def test_get_by_applicant(self, repository):
        await repository.create(make_form("LEAVE-1", apply_date=datetime(2026, 1, 1, tzinfo=timezone.utc)))
        await repository.create(make_form("LEAVE-2", apply_date=datetime(2026, 2, 1, tzinfo=timezone.utc)))
        await repository.create(make_form("OT-1", form_type="OVERTIME"))
        await repository.create(make_form("LEAVE-9", applicant_id="E999"))

        forms = await repository.get_by_applicant("E100", "LEAVE")

        assert [form.form_id for form in forms] == ["LEAVE-2", "LEAVE-1"]


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, repository):
        with pytest.raises(FormNotFoundError):
            await repository.update(make_form("GHOST"))

    @pytest.mark.asyncio
    async def test_update_keeps_id_and_created_at(self, repository):
        created = await repository.create(make_form("LEAVE-1"))
        original = await repository.get_by_id("LEAVE-1")

        changed = make_form("LEAVE-1", status=FormStatus.REJECTED.value)
        changed.created_at = datetime(1999, 1, 1, tzinfo=timezone.utc)
        updated = await repository.update(changed)

        assert updated.id == created.id
        reloaded = await repository.get_by_id("LEAVE-1")
        assert reloaded.created_at == original.created_at
        assert reloaded.status == FormStatus.REJECTED.value

    @pytest.mark.asyncio
    async def test_stale_update_keeps_cancellation(self, repository):
        await repository.create(make_form("LEAVE-1"))
        stale = await repository.get_by_id("LEAVE-1")
        await repository.cancel(FormCancelRequest(form_id="LEAVE-1", reason="sick", operator_id="E100"))

        stale.approval_comment = "late edit"
        updated = await repository.update(stale)

        assert updated.approval_comment == "late edit"
        assert updated.is_cancelled is True
        assert updated.cancel_reason == "sick"
        assert updated.cancelled_by == "E100"
        assert updated.cancel_time is not None

    @pytest.mark.asyncio
    async def test_apply_external_on_cancelled_row_keeps_sync_state(self, repository):
        await repository.create(make_form("LEAVE-1"))
        await repository.cancel(FormCancelRequest(form_id="LEAVE-1", operator_id="E100"))
        pending = await repository.get_by_id("LEAVE-1")
        pending.is_synced_to_bpm = False
        pending.sync_error_message = "abort failed"
        await repository.update(pending)

        applied = await repository.apply_external(
            make_form("LEAVE-1", bpm_status="RUNNING", is_synced_to_bpm=True, sync_error_message=None)
        )

        assert applied.bpm_status == "RUNNING"
        assert applied.is_cancelled is True
        assert applied.is_synced_to_bpm is False
        assert applied.sync_error_message == "abort failed"

    @pytest.mark.asyncio
    async def test_apply_external_on_live_row_sets_sync_state(self, repository):
        await repository.create(make_form("LEAVE-1", is_synced_to_bpm=False, sync_error_message="old"))

        applied = await repository.apply_external(
            make_form("LEAVE-1", is_synced_to_bpm=True, sync_error_message=None)
        )

        assert applied.is_synced_to_bpm is True
        assert applied.sync_error_message is None

    @pytest.mark.asyncio
    async def test_create_or_update_merges_engine_fields_only(self, repository):
        await repository.create(make_form("LEAVE-1", applicant_name="Lin Mei"))
        await repository.cancel(FormCancelRequest(form_id="LEAVE-1", reason="dup", operator_id="E100"))

        merged = await repository.create_or_update(
            make_form(
                "LEAVE-1",
                status=FormStatus.APPROVED.value,
                current_approver_id="M001",
                applicant_name="Someone Else",
            )
        )

        assert merged.status == FormStatus.APPROVED.value
        assert merged.current_approver_id == "M001"
        assert merged.applicant_name == "Lin Mei"
        assert merged.is_cancelled is True
        assert merged.last_sync_time is not None


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_sets_local_fields(self, repository, secondary_factory):
        await repository.create(make_form("LEAVE-1"))

        result = await repository.cancel(
            FormCancelRequest(form_id="LEAVE-1", reason="plans changed", operator_id="E100")
        )

        assert result.success is True
        assert result.cancel_time is not None
        stored = await repository.get_by_id("LEAVE-1")
        assert stored.is_cancelled is True
        assert stored.status == FormStatus.CANCELLED.value
        assert stored.cancel_reason == "plans changed"
        assert stored.cancelled_by == "E100"
        async with secondary_factory() as session:
            mirror = await session.scalar(select(BpmForm).where(BpmForm.form_id == "LEAVE-1"))
        assert mirror.is_cancelled is True

    @pytest.mark.asyncio
    async def test_cancel_missing(self, repository):
        result = await repository.cancel(FormCancelRequest(form_id="NOPE", operator_id="E100"))

        assert result.success is False
        assert result.error_code == FORM_NOT_FOUND

    @pytest.mark.asyncio
    async def test_second_cancel_reports_already_cancelled(self, repository):
        await repository.create(make_form("LEAVE-1"))
        await repository.cancel(FormCancelRequest(form_id="LEAVE-1", operator_id="E100"))
        before = (await repository.get_by_id("LEAVE-1")).updated_at

        result = await repository.cancel(FormCancelRequest(form_id="LEAVE-1", operator_id="E200"))

        assert result.success is False
        assert result.error_code == ALREADY_CANCELLED
        after = await repository.get_by_id("LEAVE-1")
        assert after.updated_at == before
        assert after.cancelled_by == "E100"


class TestSecondaryIsolation:

    @pytest.fixture
    def isolated_repository(self, primary_factory, failing_secondary_factory):
        return BpmFormRepository(primary_factory, failing_secondary_factory)

    @pytest.mark.asyncio
    async def test_writes_succeed_when_mirror_is_down(self, isolated_repository, failing_secondary_factory):
        created = await isolated_repository.create(make_form("LEAVE-1"))
        created.status = FormStatus.PROCESSING.value
        updated = await isolated_repository.update(created)
        result = await isolated_repository.cancel(FormCancelRequest(form_id="LEAVE-1", operator_id="E1"))
        await isolated_repository.log_sync(make_log("LEAVE-1"))
        written = await isolated_repository.add_approval_history(
            BpmFormApprovalHistory(form_id="LEAVE-1", sequence_no=1, approver_id="M1", action="APPROVE")
        )

        assert updated.status == FormStatus.PROCESSING.value
        assert result.success is True
        assert written is True
        assert failing_secondary_factory.call_count >= 5
        assert (await isolated_repository.get_by_id("LEAVE-1")).is_cancelled is True

    @pytest.mark.asyncio
    async def test_no_mirror_configured(self, primary_factory):
        repository = BpmFormRepository(primary_factory)

        created = await repository.create(make_form("LEAVE-1"))

        assert created.form_id == "LEAVE-1"

    @pytest.mark.asyncio
    async def test_primary_failure_propagates(self):
        repository = BpmFormRepository(MagicMock(side_effect=ConnectionRefusedError("primary down")))

        with pytest.raises(ConnectionRefusedError):
            await repository.create(make_form("LEAVE-1"))


class TestQuery:

    @pytest.fixture
    async def seeded(self, repository):
        for day, form_id, status in [
            (1, "LEAVE-1", FormStatus.PENDING.value),
            (2, "LEAVE-2", FormStatus.APPROVED.value),
            (3, "LEAVE-3", FormStatus.PENDING.value),
        ]:
            await repository.create(
                make_form(form_id, status=status, apply_date=datetime(2026, 3, day, tzinfo=timezone.utc))
            )
        await repository.create(make_form("OT-1", form_type="OVERTIME", company_id="C02"))
        return repository

    @pytest.mark.asyncio
    async def test_paging_and_order(self, seeded):
        result = await seeded.query(FormQueryRequest(form_type="LEAVE", page=1, page_size=2))

        assert result.total_count == 3
        assert result.total_pages == 2
        assert [form.form_id for form in result.forms] == ["LEAVE-3", "LEAVE-2"]

        second = await seeded.query(FormQueryRequest(form_type="LEAVE", page=2, page_size=2))
        assert [form.form_id for form in second.forms] == ["LEAVE-1"]

    @pytest.mark.asyncio
    async def test_filters(self, seeded):
        pending = await seeded.query(FormQueryRequest(status=FormStatus.PENDING.value, form_type="LEAVE"))
        by_company = await seeded.query(FormQueryRequest(company_id="C02"))
        in_range = await seeded.query(
            FormQueryRequest(
                form_type="LEAVE",
                apply_date_from=datetime(2026, 3, 2, tzinfo=timezone.utc),
                apply_date_to=datetime(2026, 3, 2, 23, 59, tzinfo=timezone.utc),
            )
        )

        assert {form.form_id for form in pending.forms} == {"LEAVE-1", "LEAVE-3"}
        assert [form.form_id for form in by_company.forms] == ["OT-1"]
        assert [form.form_id for form in in_range.forms] == ["LEAVE-2"]

    @pytest.mark.asyncio
    async def test_paging_is_clamped(self, seeded):
        result = await seeded.query(FormQueryRequest(page=0, page_size=1000))

        assert result.page == 1
        assert result.page_size == 100
        assert result.total_count == 4

    @pytest.mark.asyncio
    async def test_is_cancelled_filter(self, seeded):
        await seeded.cancel(FormCancelRequest(form_id="LEAVE-2", operator_id="E100"))

        result = await seeded.query(FormQueryRequest(is_cancelled=True))

        assert [form.form_id for form in result.forms] == ["LEAVE-2"]


class TestAuditTrail:

    @pytest.mark.asyncio
    async def test_sync_logs_newest_first_with_limit(self, repository, secondary_factory):
        for hour in range(12):
            await repository.log_sync(make_log("LEAVE-1", when=datetime(2026, 3, 1, hour, tzinfo=timezone.utc)))

        logs = await repository.get_sync_logs("LEAVE-1")

        assert len(logs) == 10
        assert logs[0].sync_time.hour == 11
        assert await count_rows(secondary_factory, BpmFormSyncLog, "LEAVE-1") == 12

    @pytest.mark.asyncio
    async def test_sync_log_defaults_time(self, repository):
        await repository.log_sync(make_log("LEAVE-1"))

        logs = await repository.get_sync_logs("LEAVE-1")
        assert logs[0].sync_time is not None

    @pytest.mark.asyncio
    async def test_log_sync_swallows_primary_failure(self):
        repository = BpmFormRepository(MagicMock(side_effect=ConnectionRefusedError("down")))

        await repository.log_sync(make_log("LEAVE-1"))
        assert await repository.get_sync_logs("LEAVE-1") == []

    @pytest.mark.asyncio
    async def test_approval_history_dedupes_and_orders(self, repository, secondary_factory):
        steps = [
            BpmFormApprovalHistory(form_id="LEAVE-1", sequence_no=2, approver_id="M2", action="APPROVE"),
            BpmFormApprovalHistory(form_id="LEAVE-1", sequence_no=1, approver_id="M1", action="APPROVE"),
            BpmFormApprovalHistory(form_id="LEAVE-1", sequence_no=1, approver_id="M1", action="APPROVE"),
        ]

        written = [await repository.add_approval_history(step) for step in steps]

        assert written == [True, True, False]
        history = await repository.get_approval_history("LEAVE-1")
        assert [entry.sequence_no for entry in history] == [1, 2]
        assert await count_rows(secondary_factory, BpmFormApprovalHistory, "LEAVE-1") == 2


class TestLeaveLookups:

    @pytest.mark.asyncio
    async def test_cancellable_leave_forms(self, repository):
        approved = FormStatus.APPROVED.value
        await repository.create(make_form("LEAVE-OLD", status=approved, apply_date=datetime(2026, 1, 5, tzinfo=timezone.utc)))
        await repository.create(make_form("LEAVE-NEW", status=approved, apply_date=datetime(2026, 4, 1, tzinfo=timezone.utc)))
        await repository.create(make_form("LEAVE-PENDING"))
        await repository.create(make_form("LEAVE-DONE", status=approved))
        await repository.cancel(FormCancelRequest(form_id="LEAVE-DONE", operator_id="E100"))
        await repository.create(make_form("OT-1", form_type="OVERTIME", form_code="PI_OVERTIME_001", status=approved))
        await repository.create(make_form("LEAVE-OTHER", applicant_id="E999", status=approved))

        forms = await repository.get_cancellable_leave_forms("E100")

        assert [form.form_id for form in forms] == ["LEAVE-NEW", "LEAVE-OLD"]

    @pytest.mark.asyncio
    async def test_cancellable_leave_forms_none(self, repository):
        assert await repository.get_cancellable_leave_forms("E404") == []

    @pytest.mark.asyncio
    async def test_form_with_details(self, repository):
        await repository.create(make_form("LEAVE-1"))
        await repository.add_approval_history(
            BpmFormApprovalHistory(form_id="LEAVE-1", sequence_no=2, approver_id="M2", action="APPROVE")
        )
        await repository.add_approval_history(
            BpmFormApprovalHistory(form_id="LEAVE-1", sequence_no=1, approver_id="M1", action="APPROVE")
        )

        details = await repository.get_form_with_details("LEAVE-1")

        assert details.form.form_id == "LEAVE-1"
        assert [entry.approver_id for entry in details.approval_history] == ["M1", "M2"]

    @pytest.mark.asyncio
    async def test_form_with_details_without_history(self, repository):
        await repository.create(make_form("LEAVE-1"))

        details = await repository.get_form_with_details("LEAVE-1")

        assert details.approval_history == []

    @pytest.mark.asyncio
    async def test_form_with_details_missing(self, repository):
        assert await repository.get_form_with_details("NOPE") is None
