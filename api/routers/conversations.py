from fastapi import APIRouter, Depends
from redis.exceptions import RedisError

from api.dependencies import get_caller, get_container
from api.schemas import VaultCreate, VaultOut, WorkspaceCreate, WorkspaceOut, dump, envelope
from economist_ai.exception import NotFoundError
from economist_ai.logger import GLOBAL_LOGGER as log
from orchestrator.chat_orchestrator import Caller
from orchestrator.service_container import ServiceContainer

router = APIRouter(prefix="/api")


async def _drop_context(container: ServiceContainer, conversation_id: str) -> None:
    try:
        await container.context_cache.reset(conversation_id)
    except RedisError as e:
        log.warning("Context cache reset failed | conversation_id=%s | error=%s", conversation_id, str(e))


@router.post("/workspaces", status_code=201)
async def create_workspace(
    body: WorkspaceCreate,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    ws = await container.workspaces.create(caller.user_id, body.title)
    return envelope(dump(WorkspaceOut, ws))


@router.get("/workspaces")
async def list_workspaces(
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    rows = await container.workspaces.list_for_user(caller.user_id)
    return envelope([dump(WorkspaceOut, r) for r in rows])


@router.delete("/workspaces/{workspace_id}")
async def delete_workspace(
    workspace_id: str,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    if not await container.workspaces.exists(workspace_id, caller.user_id):
        raise NotFoundError("Workspace not found", details=workspace_id)
    await container.workspaces.delete(workspace_id)
    await _drop_context(container, workspace_id)
    return envelope({"message": "Workspace deleted successfully", "workspaceId": workspace_id})


@router.post("/vaults", status_code=201)
async def create_vault(
    body: VaultCreate,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    vault = await container.vaults.create(caller.user_id, body.title, is_public=body.is_public)
    return envelope(dump(VaultOut, vault))


@router.get("/vaults")
async def list_vaults(
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    rows = await container.vaults.list_for_user(caller.user_id)
    return envelope([dump(VaultOut, r) for r in rows])


@router.delete("/vaults/{vault_id}")
async def delete_vault(
    vault_id: str,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    """
    Vectors go first: the namespace is dropped before the vault row (and with it
    documents, chunk rows and messages) is removed.
    """
    if not await container.vaults.exists(vault_id, caller.user_id):
        raise NotFoundError("Vault not found", details=vault_id)

    # 1. vectors  2. rows  3. cached context
    await container.vector_store.drop_namespace(vault_id)
    await container.vaults.delete(vault_id)
    await _drop_context(container, vault_id)

    log.info("Vault deleted | vault_id=%s | user_id=%s", vault_id, caller.user_id)
    return envelope({"message": "Vault deleted successfully", "vaultId": vault_id})
