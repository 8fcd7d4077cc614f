"""
Tests for batch ingestion of middleware pushes.
"""

import pytest
from pydantic import SecretStr
from unittest.mock import patch

from modules.bpm_forms.core.config import BpmSettings
from modules.bpm_forms.models import FormStatus, FormType
from modules.bpm_forms.services.bpm_read import (
    CODE_ERROR,
    CODE_REJECTED,
    CODE_SUCCESS,
    BpmReadService,
)
from modules.bpm_forms.services.results import FormCancelRequest


@pytest.fixture
def read_service(sync_service, mock_middleware_client, bpm_settings):
    return BpmReadService(sync_service, mock_middleware_client, bpm_settings)


def batch(*items, bskey="test-bskey", company="C01"):
    return {"bskey": bskey, "companyId": company, "bpmData": list(items)}


LEAVE_ITEM = {"processSerialNo": "LV-1", "formCode": "PI_LEAVE_001", "version": "1.0.1", "uid": "E100"}
OVERTIME_ITEM = {"processSerialNo": "OT-1", "formCode": "PI_OVERTIME_001", "uid": "E200"}


class TestRejection:

    @pytest.mark.asyncio
    async def test_bskey_mismatch_rejects_without_side_effects(self, read_service, sync_service, mock_middleware_client):
        response = await read_service.process(batch(LEAVE_ITEM, bskey="wrong"))

        assert response.code == CODE_REJECTED
        assert response.data is None
        assert await sync_service.repository.get_by_id("LV-1") is None
        mock_middleware_client.fetch_process.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"companyId": "C01", "bpmData": [LEAVE_ITEM]},
            batch(LEAVE_ITEM, company="  "),
            batch(),
            [LEAVE_ITEM],
            {"bskey": "test-bskey", "companyId": "C01", "bpmData": "not-a-list"},
        ],
    )
    async def test_invalid_requests_rejected(self, read_service, payload):
        response = await read_service.process(payload)

        assert response.code == CODE_REJECTED

    @pytest.mark.asyncio
    async def test_unset_bskey_rejects_everything(self, sync_service, mock_middleware_client):
        service = BpmReadService(sync_service, mock_middleware_client, BpmSettings(BPM_READ_BSKEY=SecretStr("")))

        response = await service.process(batch(LEAVE_ITEM, bskey=""))

        assert response.code == CODE_REJECTED

    @pytest.mark.asyncio
    async def test_all_items_failing_is_rejected(self, read_service):
        response = await read_service.process(batch({"formCode": "PI_LEAVE_001"}, {"uid": "E1"}))

        assert response.code == CODE_REJECTED


class TestIngestion:

    @pytest.mark.asyncio
    async def test_partial_batch_persists_valid_items(self, read_service, sync_service):
        response = await read_service.process(batch(LEAVE_ITEM, {"formCode": "PI_LEAVE_001"}, OVERTIME_ITEM))

        assert response.code == CODE_SUCCESS
        assert response.data.status == "請求成功，已處理 2 筆資料"

        leave = await sync_service.repository.get_by_id("LV-1")
        assert leave.form_type == FormType.LEAVE.value
        assert leave.form_version == "1.0.1"
        assert leave.applicant_id == "E100"
        assert leave.company_id == "C01"
        assert leave.status == FormStatus.PENDING.value
        assert leave.is_synced_to_bpm is True

        overtime = await sync_service.repository.get_by_id("OT-1")
        assert overtime.form_type == FormType.OVERTIME.value
        assert overtime.form_version == "1.0.0"

        logs = await sync_service.repository.get_sync_logs("LV-1")
        assert (logs[0].sync_type, logs[0].sync_direction, logs[0].sync_status) == ("PUSH", "IN", "SUCCESS")

    @pytest.mark.asyncio
    async def test_lowercase_keys_accepted(self, read_service, sync_service):
        payload = {
            "bskey": "test-bskey",
            "companyid": "C01",
            "bpmdata": [{"processserialno": 20260001, "formcode": "PI_LEAVE_001"}],
        }

        response = await read_service.process(payload)

        assert response.code == CODE_SUCCESS
        assert await sync_service.repository.get_by_id("20260001") is not None

    @pytest.mark.asyncio
    async def test_middleware_detail_enriches_record(
        self, read_service, sync_service, mock_middleware_client, sample_middleware_detail
    ):
        mock_middleware_client.fetch_process.return_value = sample_middleware_detail

        await read_service.process(batch(OVERTIME_ITEM))

        form = await sync_service.repository.get_by_id("OT-1")
        assert form.status == FormStatus.PROCESSING.value
        assert form.bpm_status == "RUNNING"
        assert form.applicant_name == "Wang Yu"
        assert form.applicant_department == "Finance"
        assert '"hours": 3' in form.form_data

        history = await sync_service.repository.get_approval_history("OT-1")
        assert [(entry.sequence_no, entry.approver_id) for entry in history] == [(1, "M001"), (2, "M002")]
        assert history[0].approver_name == "Chen Hao"

    @pytest.mark.asyncio
    async def test_repush_updates_without_duplicating_history(
        self, read_service, sync_service, mock_middleware_client, sample_middleware_detail
    ):
        mock_middleware_client.fetch_process.return_value = sample_middleware_detail
        await read_service.process(batch(OVERTIME_ITEM))
        first = await sync_service.repository.get_by_id("OT-1")

        sample_middleware_detail["status"] = "COMPLETED"
        await read_service.process(batch(OVERTIME_ITEM))

        form = await sync_service.repository.get_by_id("OT-1")
        assert form.id == first.id
        assert form.status == FormStatus.APPROVED.value
        assert len(await sync_service.repository.get_approval_history("OT-1")) == 2

    @pytest.mark.asyncio
    async def test_push_does_not_clear_local_cancellation(self, read_service, sync_service, mock_middleware_client):
        await read_service.process(batch(LEAVE_ITEM))
        await sync_service.repository.cancel(
            FormCancelRequest(form_id="LV-1", reason="dup", operator_id="E100")
        )

        mock_middleware_client.fetch_process.return_value = {"status": "RUNNING"}
        await read_service.process(batch(LEAVE_ITEM))

        form = await sync_service.repository.get_by_id("LV-1")
        assert form.is_cancelled is True
        assert form.cancel_reason == "dup"

    @pytest.mark.asyncio
    async def test_item_failure_is_isolated(self, read_service, sync_service, mock_middleware_client):
        async def lookup(serial_no):
            if serial_no == "LV-1":
                raise RuntimeError("unexpected")
            return None

        mock_middleware_client.fetch_process.side_effect = lookup

        response = await read_service.process(batch(LEAVE_ITEM, OVERTIME_ITEM))

        assert response.code == CODE_SUCCESS
        assert response.data.status == "請求成功，已處理 1 筆資料"
        assert await sync_service.repository.get_by_id("LV-1") is None
        assert await sync_service.repository.get_by_id("OT-1") is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "bad_item",
        [None, "garbage", 42, {"processSerialNo": {"x": 1}, "formCode": "PI_LEAVE_001"}],
    )
    async def test_malformed_item_fails_alone(self, read_service, sync_service, bad_item):
        response = await read_service.process(batch(LEAVE_ITEM, bad_item, OVERTIME_ITEM))

        assert response.code == CODE_SUCCESS
        assert response.data.status == "請求成功，已處理 2 筆資料"
        assert await sync_service.repository.get_by_id("LV-1") is not None
        assert await sync_service.repository.get_by_id("OT-1") is not None

    @pytest.mark.asyncio
    async def test_only_malformed_items_is_rejected(self, read_service):
        response = await read_service.process(batch(None, ["LV-1"]))

        assert response.code == CODE_REJECTED

    @pytest.mark.asyncio
    async def test_alternate_form_data_key(self, read_service, sync_service, mock_middleware_client):
        mock_middleware_client.fetch_process.return_value = {"status": "RUNNING", "data": {"days": 2}}

        await read_service.process(batch(LEAVE_ITEM))

        form = await sync_service.repository.get_by_id("LV-1")
        assert form.form_data is not None
        assert '"days": 2' in form.form_data

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_500(self, read_service):
        with patch.object(BpmReadService, "validate_bskey", side_effect=RuntimeError("boom")):
            response = await read_service.process(batch(LEAVE_ITEM))

        assert response.code == CODE_ERROR


class TestBuildHelpers:

    def test_build_history_skips_malformed_entries(self):
        detail = {"approvalHistory": [{"sequence": "x", "approverId": "M1"}, "junk", {"sequenceNo": 3}]}

        entries = BpmReadService.build_history("F-1", detail)

        assert [entry.sequence_no for entry in entries] == [0, 3]
        assert entries[1].approver_id == ""

    def test_build_history_without_list(self):
        assert BpmReadService.build_history("F-1", {"approvalHistory": "none"}) == []
