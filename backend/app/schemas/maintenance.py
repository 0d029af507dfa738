from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.error import ErrorResponse


class CodeSample(BaseModel):
    code: str
    usage_count: int = Field(ge=0)
    created_at: datetime


class CodeStats(BaseModel):
    total: int = Field(ge=0)
    used: int = Field(ge=0)
    unused: int = Field(ge=0)
    samples: list[CodeSample] = Field(default_factory=list)


class MaintenanceReport(BaseModel):
    success: bool = True
    timestamp: str
    deleted: int = Field(ge=0)
    stats_before: CodeStats
    stats_after: CodeStats
    message: str


class MaintenanceErrorResponse(ErrorResponse):
    timestamp: str
    deleted: int = 0
