"""Queue payloads consumed by the worker."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, ConfigDict, Field

from .base import CamelModel


class JobMessage(CamelModel):
    job_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    document_key: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("documentKey", "document_key", "s3Key"),
        serialization_alias="documentKey",
    )
    file_name: str = Field(default="statement.pdf")
    timestamp: datetime | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "jobId": "4f1c2a9e-7f0e-4c55-9a57-0d1e0f3b8a11",
                "userId": "b3e1d6c2-1a0f-4f7e-8d2c-6a5b4c3d2e1f",
                "documentKey": "uploads/b3e1d6c2/1717171717-cas.pdf",
                "fileName": "cas.pdf",
                "timestamp": "2024-06-01T10:00:00Z",
            }
        }
    )


__all__ = ["JobMessage"]
