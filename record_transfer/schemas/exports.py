"""Export request and response schemas."""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ConditionOp = Literal["==", "!=", "<", "<=", ">", ">=", "in", "prefix", "contains", "contains_any"]


class FieldCondition(BaseModel):
    """Generic predicate on a dotted field path."""

    path: str = Field(..., min_length=1, max_length=500)
    op: ConditionOp
    value: Any


class ExportFilters(BaseModel):
    """Filters selecting the records to export. All filters are combined with AND."""

    name: Optional[str] = Field(None, description="Case-insensitive name prefix")
    industries: list[str] = Field(default_factory=list, description="Any of these industries")
    locations: list[str] = Field(default_factory=list, description="Municipality in this list")
    min_revenue: Optional[float] = Field(None, alias="minRevenue")
    max_revenue: Optional[float] = Field(None, alias="maxRevenue")
    where: list[FieldCondition] = Field(default_factory=list)

    class Config:
        extra = "forbid"
        populate_by_name = True


class ExportPreviewRequest(BaseModel):
    """Request to count matching records."""

    filters: ExportFilters = Field(default_factory=ExportFilters)


class ExportPreviewResponse(BaseModel):
    count: int


class ExportRequest(BaseModel):
    """Request to start an export."""

    filters: ExportFilters = Field(default_factory=ExportFilters)
    format: Literal["csv", "json"]
    fields: list[str] = Field(..., min_length=1)


class ExportCreateResponse(BaseModel):
    export_id: str
    status: str


class ExportJobResponse(BaseModel):
    """Export job snapshot."""

    id: str
    team_id: str
    requested_by: str
    status: str
    progress: int
    format: str
    fields: list[str]
    filters: dict[str, Any]
    total_records: int
    download_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
