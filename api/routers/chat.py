from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from api.dependencies import get_container, get_optional_caller
from economist_ai.exception import EconomistException
from economist_ai.logger import GLOBAL_LOGGER as log
from orchestrator.chat_orchestrator import VAULT, WORKSPACE, Caller, ChatRequest
from orchestrator.service_container import ServiceContainer

router = APIRouter(prefix="/api")


async def _chat(mode: str, conversation_id: str, request: Request, caller, container) -> object:
    """
    Streaming chat endpoint shared by workspaces and vaults.

    Success is a text/plain body streamed as the model produces it; every
    failure before the first byte is a short plain-text error with status
    400 / 401 / 404 / 500.
    """
    # 1. Caller must carry a bearer token
    if caller is None:
        return PlainTextResponse("Unauthorized", status_code=401)

    # 2. Parse the body; bad JSON is a plain-text 400
    try:
        body = await request.json()
    except ValueError:
        return PlainTextResponse("Invalid JSON body", status_code=400)
    if not isinstance(body, dict):
        return PlainTextResponse("Invalid messages payload", status_code=400)

    # 3. Validate, persist the user turn and open the model stream
    try:
        stream = await container.orchestrator.start_chat(
            mode,
            ChatRequest(
                conversation_id=conversation_id.strip(),
                messages=body.get("messages"),
                system=body.get("system"),
                temperature=body.get("temperature"),
            ),
            caller,
        )
    except EconomistException as e:
        log.warning("Chat rejected | mode=%s | conversation_id=%s | error=%s", mode, conversation_id, str(e))
        status = e.status_code if e.status_code in {400, 401, 403, 404} else 500
        return PlainTextResponse(e.message, status_code=status)
    except Exception:
        log.exception("Chat failed before streaming | mode=%s | conversation_id=%s", mode, conversation_id)
        return PlainTextResponse("Internal server error", status_code=500)

    # 4. Stream tokens; the assistant turn is persisted when the stream ends
    return StreamingResponse(
        stream,
        media_type="text/plain; charset=utf-8",
        headers={"X-Persona": stream.persona, "Cache-Control": "no-cache"},
    )


@router.post("/workspace/{workspace_id}")
async def workspace_chat(
    workspace_id: str,
    request: Request,
    caller: Optional[Caller] = Depends(get_optional_caller),
    container: ServiceContainer = Depends(get_container),
):
    return await _chat(WORKSPACE, workspace_id, request, caller, container)


@router.post("/vault/{vault_id}")
async def vault_chat(
    vault_id: str,
    request: Request,
    caller: Optional[Caller] = Depends(get_optional_caller),
    container: ServiceContainer = Depends(get_container),
):
    return await _chat(VAULT, vault_id, request, caller, container)
