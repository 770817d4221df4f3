from fastapi import APIRouter, Depends, Query
from redis.exceptions import RedisError

from api.dependencies import get_caller, get_container
from api.schemas import ConversationKind, MessageOut, MessageUpdate, dump, envelope
from economist_ai.exception import NotFoundError, ValidationError
from economist_ai.logger import GLOBAL_LOGGER as log
from orchestrator.chat_orchestrator import Caller
from orchestrator.service_container import ServiceContainer

router = APIRouter(prefix="/api")


def _stores(container: ServiceContainer, kind: ConversationKind):
    if kind is ConversationKind.vault:
        return container.vaults, container.vault_messages
    return container.workspaces, container.workspace_messages


async def _require_owner(container, kind: ConversationKind, conversation_id: str, caller: Caller):
    owners, _ = _stores(container, kind)
    if not await owners.exists(conversation_id, caller.user_id):
        raise NotFoundError(f"{kind.value.capitalize()} not found", details=conversation_id)


@router.get("/{kind}/{conversation_id}/messages")
async def list_messages(
    kind: ConversationKind,
    conversation_id: str,
    limit: int = Query(default=50, ge=1, le=1000),
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    await _require_owner(container, kind, conversation_id, caller)
    _, messages = _stores(container, kind)
    rows = await messages.list_recent(conversation_id, limit)
    return envelope([dump(MessageOut, m) for m in rows])


@router.patch("/{kind}/{conversation_id}/messages/{message_id}")
async def update_message(
    kind: ConversationKind,
    conversation_id: str,
    message_id: str,
    body: MessageUpdate,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    await _require_owner(container, kind, conversation_id, caller)
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("Nothing to update", details="Provide is_upvoted and/or metadata")
    _, messages = _stores(container, kind)
    updated = await messages.update(message_id, fields, conversation_id=conversation_id)
    if updated is None:
        raise NotFoundError("Message not found", details=message_id)
    return envelope(dump(MessageOut, updated))


@router.get("/{kind}/{conversation_id}/context")
async def get_context(
    kind: ConversationKind,
    conversation_id: str,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    await _require_owner(container, kind, conversation_id, caller)
    try:
        messages = await container.context_cache.get(conversation_id)
    except RedisError as e:
        # the cache is a derived view; an outage just means no short-term context
        log.warning("Context cache read failed | conversation_id=%s | error=%s", conversation_id, str(e))
        messages = []
    return envelope({"messages": messages, "count": len(messages)})


@router.delete("/{kind}/{conversation_id}/context")
async def reset_context(
    kind: ConversationKind,
    conversation_id: str,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    await _require_owner(container, kind, conversation_id, caller)
    await container.context_cache.reset(conversation_id)
    return envelope({"message": "Context reset", "conversationId": conversation_id})
