from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from orgscope.db.session import scoped_session
from orgscope.scope.aggregates import compliance_breakdown
from orgscope.scope.privacy import Surface
from orgscope.scope.requests import ScopeResult
from orgscope.schemas.assistant import AssistantAnswerOut, AssistantQueryIn, ConversationOut
from orgscope.schemas.scope import MetricOut
from orgscope.security.context import AuthzContext
from orgscope.security.dependencies import current_scope, get_authz, get_services
from orgscope.services import ScopeServices

router = APIRouter(prefix="/assistant", tags=["assistant"])


@router.post("/conversations", response_model=ConversationOut, status_code=status.HTTP_201_CREATED)
def start_conversation(
    result: ScopeResult = Depends(current_scope),
    authz: AuthzContext = Depends(get_authz),
    services: ScopeServices = Depends(get_services),
) -> ConversationOut:
    conversation = services.conversations.start(authz.session_id, result)
    return ConversationOut(
        conversation_id=conversation.conversation_id,
        context=result.artifacts.assistant.to_dict(),
        stale=result.stale,
    )


@router.post("/conversations/{conversation_id}/query", response_model=AssistantAnswerOut)
def query(
    conversation_id: str,
    body: AssistantQueryIn,
    authz: AuthzContext = Depends(get_authz),
    services: ScopeServices = Depends(get_services),
) -> AssistantAnswerOut:
    conversation = services.conversations.get(conversation_id, authz.session_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

    # StaleScopeError (409) once the bound scope request is invalidated.
    result = services.conversations.scope_for(conversation)

    with scoped_session(services.session_factory, result.artifacts.catalog) as db:
        breakdown = compliance_breakdown(db)
    # Same decision the dashboard makes for the overall and region tiles.
    overall, _ = services.guard.evaluate_breakdown(breakdown.overall, breakdown.regions, Surface.ASSISTANT_ANSWER)
    if body.region is None:
        answer = overall
    else:
        answer = services.guard.evaluate(breakdown.region(body.region), Surface.ASSISTANT_ANSWER)

    return AssistantAnswerOut(
        conversation_id=conversation.conversation_id,
        answer=MetricOut.from_guard(answer),
        stale=result.stale,
    )
