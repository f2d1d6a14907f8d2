from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from orgscope.schemas.scope import MetricOut


class ConversationOut(BaseModel):
    conversation_id: str
    context: dict[str, Any]
    stale: bool


class AssistantQueryIn(BaseModel):
    """
    A question to the assistant. Only a metric and an optional narrowing
    region are accepted; any scope-like field (member ids, level, regions
    list) is rejected outright.
    """

    model_config = ConfigDict(extra="forbid")

    metric: Literal["office_compliance"] = "office_compliance"
    region: str | None = None


class AssistantAnswerOut(BaseModel):
    conversation_id: str
    answer: MetricOut
    stale: bool
