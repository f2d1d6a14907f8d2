from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from orgscope.directory.records import RoleLevel
from orgscope.scope.privacy import GuardResult


class SessionCreateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # entra mode only; demo sessions refresh without one.
    refresh_token: str | None = None


class SessionOut(BaseModel):
    session_id: str
    principal_id: int
    role_level: RoleLevel
    expires_at: datetime


class ScopeOut(BaseModel):
    request_id: str
    anchor_id: int
    actual_level: RoleLevel
    effective_level: RoleLevel
    requested_level: RoleLevel | None
    clamped: bool
    member_count: int
    regions: list[str]
    snapshot_version: int
    stale: bool
    power_bi_filters: list[dict[str, Any]]
    catalog_predicate: dict[str, Any]
    assistant_context: dict[str, Any]


class EmbedSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filter_pane_enabled: bool = Field(default=False, alias="filterPaneEnabled")
    nav_content_pane_enabled: bool = Field(default=False, alias="navContentPaneEnabled")


class ReportEmbedOut(BaseModel):
    """Embed configuration handed to the BI SDK; filters are locked (pane hidden)."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = "report"
    id: str | None
    embed_url: str = Field(alias="embedUrl")
    token_type: str = Field(default="Aad", alias="tokenType")
    settings: EmbedSettings = Field(default_factory=EmbedSettings)
    filters: list[dict[str, Any]]
    stale: bool


class MetricOut(BaseModel):
    metric: str
    label: str
    displayable: bool
    value: float | None = None
    member_count: int | None = None
    reason: str | None = None

    @classmethod
    def from_guard(cls, result: GuardResult) -> MetricOut:
        if result.displayable:
            aggregate = result.aggregate
            return cls(
                metric=aggregate.metric,
                label=aggregate.label,
                displayable=True,
                value=aggregate.value,
                member_count=aggregate.member_count,
            )
        return cls(metric=result.metric, label=result.label, displayable=False, reason=result.reason)


class DashboardSummaryOut(BaseModel):
    effective_level: RoleLevel
    clamped: bool
    stale: bool
    tiles: list[MetricOut]


class RefreshOut(BaseModel):
    snapshot_version: int
    employees: int


class OverrideAuditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    principal_id: int
    actual_ceiling: RoleLevel
    requested_level: RoleLevel
    accepted: bool
    at: datetime
