"""
Batch Ingestion Schemas.

Wire format of the BPM middleware's push (``POST /app/bpmread``). The
middleware sends lowercase keys (``companyid``, ``bpmdata``); camelCase is
accepted as well.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class BpmDataItem(BaseModel):
    """One form event in a batch push."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    uid: Optional[str] = Field(None, description="Applicant user id")
    form_code: Optional[str] = Field(
        None, validation_alias=AliasChoices("formCode", "formcode", "form_code"),
    )
    version: Optional[str] = Field(None, description="Form version")
    process_serial_no: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("processSerialNo", "processserialno", "process_serial_no"),
        description="External process serial number (the form id)",
    )


class BpmReadRequest(BaseModel):
    """Batch push body."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    bskey: Optional[str] = Field(None, description="Pre-shared key")
    company_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("companyId", "companyid", "company_id"),
    )
    # Raw items; each is validated on its own by the service
    bpm_data: list[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("bpmData", "bpmdata", "bpm_data"),
    )


class BpmReadResponseData(BaseModel):
    status: str


class BpmReadResponse(BaseModel):
    """Reply body. ``code`` is ``200``, ``203`` or ``500``."""

    code: str
    msg: str
    data: Optional[BpmReadResponseData] = None
