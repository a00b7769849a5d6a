from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult


class TokenRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: str = Field(..., min_length=1)


class SuccessResponse(BaseModel):
    success: bool


class JobCreateRequest(BaseModel):
    """Job document as submitted by the client; unknown fields are stored as-is."""

    model_config = ConfigDict(extra="allow")

    hr_email: Any = None
    title: Any = None
    location: Any = None
    jobType: Any = None
    salaryRange: Any = None
    applicationDeadline: Any = None
    company: Any = None
    company_logo: Any = None

    def to_document(self) -> dict[str, Any]:
        return {**self.model_dump(exclude_unset=True), **(self.model_extra or {})}


class ApplicationCreateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    job_id: Any = None
    applicant_email: Any = None
    status: Any = None

    def to_document(self) -> dict[str, Any]:
        return {**self.model_dump(exclude_unset=True), **(self.model_extra or {})}


class ApplicationStatusUpdate(BaseModel):
    status: str


class InsertResultResponse(BaseModel):
    acknowledged: bool
    inserted_id: str = Field(serialization_alias="insertedId")

    @classmethod
    def from_result(cls, result: InsertOneResult) -> InsertResultResponse:
        return cls(acknowledged=result.acknowledged, inserted_id=str(result.inserted_id))


class UpdateResultResponse(BaseModel):
    acknowledged: bool
    matched_count: int = Field(serialization_alias="matchedCount")
    modified_count: int = Field(serialization_alias="modifiedCount")
    upserted_id: str | None = Field(default=None, serialization_alias="upsertedId")
    upserted_count: int = Field(default=0, serialization_alias="upsertedCount")

    @classmethod
    def from_result(cls, result: UpdateResult) -> UpdateResultResponse:
        upserted_id = result.upserted_id
        return cls(
            acknowledged=result.acknowledged,
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=str(upserted_id) if upserted_id is not None else None,
            upserted_count=1 if upserted_id is not None else 0,
        )


class DeleteResultResponse(BaseModel):
    acknowledged: bool
    deleted_count: int = Field(serialization_alias="deletedCount")

    @classmethod
    def from_result(cls, result: DeleteResult) -> DeleteResultResponse:
        return cls(acknowledged=result.acknowledged, deleted_count=result.deleted_count)


class MetricsSnapshot(BaseModel):
    generated_at: str
    totals: dict[str, int]
    endpoints: dict[str, dict[str, float | int]]
