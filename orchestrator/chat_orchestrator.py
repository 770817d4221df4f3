from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from redis.exceptions import RedisError

from db.models import new_id, utcnow
from economist_ai.exception import (
    AuthError,
    EconomistException,
    ErrorType,
    NotFoundError,
    ValidationError,
)
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.prompts.prompt_library import VAULT_PROMPT_SUFFIX, select_persona
from economist_ai.tools.tool_response import create_error_response
from economist_ai.tools.vault_tools import build_vault_tools
from redis_cache.redis_client import iso_timestamp

WORKSPACE = "workspace"
VAULT = "vault"


@dataclass
class Caller:
    """Already-authenticated handle; the core never sees how the token was issued."""

    token: str
    user_id: Optional[str] = None


@dataclass
class ChatRequest:
    conversation_id: str
    messages: Any
    system: Optional[str] = None
    temperature: Any = None


@dataclass
class ConversationStores:
    """Persistence collaborators for one conversation kind."""

    owners: Any
    messages: Any


def parse_temperature(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        temp = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(temp):
        return default
    return min(max(temp, 0.0), 2.0)


def chunk_text(chunk: BaseMessage) -> str:
    content = chunk.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def attachments_note(message: Dict[str, Any]) -> str:
    attachments = message.get("experimental_attachments") or []
    names = [str(a.get("name")) for a in attachments if isinstance(a, dict) and a.get("name")]
    if not attachments:
        return ""
    return f"\n\n[Attachments: {', '.join(names)}]"


class ChatStream:
    """
    Pull-based text stream for one chat turn.

    Iterate to receive text increments as the model produces them; the
    assistant message is persisted after the last increment is handed out.
    """

    def __init__(self, agen: AsyncIterator[str], persona: str, user_message_id: str):
        self._agen = agen
        self.persona = persona
        self.user_message_id = user_message_id

    def __aiter__(self) -> AsyncIterator[str]:
        return self._agen

    async def aclose(self) -> None:
        await self._agen.aclose()

    async def collect(self) -> str:
        return "".join([piece async for piece in self._agen])


class ChatOrchestrator:
    """
    Validate -> persona -> persist user turn -> cache push -> stream model
    (with tool calls) -> persist assistant turn + cache push.

    Durable persistence of the user turn happens before the model is called
    and is fatal on failure. Everything after the stream starts is
    best-effort and never alters text already handed to the caller.
    """

    def __init__(
        self,
        model_loader,
        context_cache,
        stores: Dict[str, ConversationStores],
        tools: List,
        retriever=None,
        documents=None,
        default_temperature: float = 0.7,
        max_tokens: int = 2000,
        max_steps: int = 5,
    ):
        self.model_loader = model_loader
        self.context_cache = context_cache
        self.stores = stores
        self.tools = list(tools)
        self.retriever = retriever
        self.documents = documents
        self.default_temperature = default_temperature
        self.max_tokens = max_tokens
        self.max_steps = max_steps

    # ---------------------------------------------------------------
    # validation
    # ---------------------------------------------------------------
    @staticmethod
    def _clean_messages(messages: Any) -> List[Dict[str, Any]]:
        if not isinstance(messages, list) or not messages:
            raise ValidationError("Invalid messages payload")
        cleaned = []
        for m in messages:
            if not isinstance(m, dict) or m.get("role") not in {"user", "assistant", "system"}:
                raise ValidationError("Invalid messages payload", details="each message needs a role")
            content = m.get("content")
            cleaned.append({**m, "content": content if isinstance(content, str) else str(content or "")})
        return cleaned

    @staticmethod
    def _last_user(messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        for m in reversed(messages):
            if m["role"] == "user":
                return m
        raise ValidationError("No user message found")

    # ---------------------------------------------------------------
    # context helpers (all non-fatal)
    # ---------------------------------------------------------------
    async def _cached_history(self, conversation_id: str) -> List[Dict[str, str]]:
        try:
            return await self.context_cache.get(conversation_id)
        except RedisError as e:
            log.warning("Context cache read failed | conversation_id=%s | error=%s", conversation_id, str(e))
            return []

    async def _cache_push(self, conversation_id: str, role: str, content: str) -> None:
        try:
            await self.context_cache.push(conversation_id, role, content, iso_timestamp())
        except RedisError as e:
            log.warning(
                "Context cache push failed | conversation_id=%s | role=%s | error=%s",
                conversation_id,
                role,
                str(e),
            )

    async def _vault_context(self, vault_id: str, user_id: str, query: str) -> str:
        if self.retriever is None:
            return ""
        try:
            return await self.retriever.build_context(vault_id, user_id, query)
        except EconomistException as e:
            log.warning("Vault retrieval failed, continuing without context | vault_id=%s | error=%s", vault_id, str(e))
            return ""

    @staticmethod
    def _history(
        messages: List[Dict[str, Any]], cached: List[Dict[str, str]]
    ) -> List[Dict[str, Any]]:
        turns = [m for m in messages if m["role"] in {"user", "assistant"}]
        # caller sent only the new turn: seed with the cached window
        if len(turns) == 1 and cached:
            seed = [
                {"role": c.get("role"), "content": c.get("content", "")}
                for c in cached
                if c.get("role") in {"user", "assistant"}
            ]
            log.info("Seeding history from context cache | cached=%d", len(seed))
            return seed + turns
        return turns

    # ---------------------------------------------------------------
    # entry point
    # ---------------------------------------------------------------
    async def start_chat(self, mode: str, request: ChatRequest, caller: Optional[Caller]) -> ChatStream:
        """
        Validate a chat request and open its response stream.

        Pipeline:
          1. Check caller, conversation kind and id
          2. Clean messages, pick persona and temperature
          3. Verify the conversation belongs to the caller
          4. Read the context window, persist and cache the user turn
          5. Build history (vault mode: add retrieved context and vault tools)
          6. Bind tools and hand back the lazy stream
        """
        # 1. Caller and conversation identity
        if caller is None or not caller.token:
            raise AuthError("Unauthorized")
        if mode not in self.stores:
            raise ValidationError(f"Unknown conversation kind: {mode}")
        if not request.conversation_id:
            raise ValidationError(f"{mode.capitalize()} ID is required")
        if mode == VAULT and not caller.user_id:
            raise AuthError("User identity is required for vault chat")

        # 2. Messages, persona, temperature
        messages = self._clean_messages(request.messages)
        last_user = self._last_user(messages)
        persona, system_prompt = select_persona(request.system)
        temperature = parse_temperature(request.temperature, self.default_temperature)

        # 3. Ownership
        stores = self.stores[mode]
        conversation_id = request.conversation_id
        if not await stores.owners.exists(conversation_id, caller.user_id):
            raise NotFoundError(f"{mode.capitalize()} not found", details=conversation_id)

        log.info(
            "Chat request | mode=%s | conversation_id=%s | persona=%s | temperature=%.2f | messages=%d",
            mode,
            conversation_id,
            persona,
            temperature,
            len(messages),
        )

        # 4. Read before the push so the window holds only earlier turns
        cached = await self._cached_history(conversation_id)

        user_message_id = new_id()
        await stores.messages.append(
            conversation_id,
            "user",
            last_user["content"] + attachments_note(last_user),
            created_at=utcnow(),
            message_id=user_message_id,
        )
        await self._cache_push(conversation_id, "user", last_user["content"])

        # 5. Model history
        history = self._history(messages, cached)
        tools = list(self.tools)
        if mode == VAULT:
            system_prompt += VAULT_PROMPT_SUFFIX
            context = await self._vault_context(conversation_id, caller.user_id, last_user["content"])
            if context:
                # attach to the newest user turn, even when an assistant turn trails it
                idx = max(i for i, m in enumerate(history) if m["role"] == "user")
                history[idx] = {**history[idx], "content": history[idx]["content"] + context}
            if self.retriever is not None and self.documents is not None:
                tools += build_vault_tools(conversation_id, self.retriever, self.documents)

        model_messages: List[BaseMessage] = [SystemMessage(content=system_prompt)]
        for m in history:
            if m["role"] == "user":
                model_messages.append(HumanMessage(content=m["content"]))
            else:
                model_messages.append(AIMessage(content=m["content"]))

        # 6. Nothing is sent to the model until the stream is consumed
        llm = self.model_loader.load_llm("chat", temperature=temperature, max_tokens=self.max_tokens)
        model = llm.bind_tools(tools) if tools else llm

        agen = self._run(mode, conversation_id, persona, model, model_messages, tools)
        return ChatStream(agen, persona, user_message_id)

    # ---------------------------------------------------------------
    # streaming + tool loop
    # ---------------------------------------------------------------
    async def _call_tool(self, tools_by_name: Dict[str, Any], call: Dict[str, Any]) -> Any:
        tool = tools_by_name.get(call.get("name"))
        if tool is None:
            return create_error_response(
                f"Unknown tool: {call.get('name')}",
                ErrorType.VALIDATION_ERROR,
                "The model requested a tool that is not available in this conversation.",
                "Answer without this tool.",
            )
        try:
            result = await tool.ainvoke(call.get("args") or {})
        except Exception as e:
            log.exception("Tool raised | tool=%s", call.get("name"))
            return create_error_response(
                str(e) or "Tool execution failed",
                ErrorType.UNKNOWN_ERROR,
                "An unexpected error occurred during tool execution.",
                "Please try again later or contact support if the issue persists.",
            )
        if isinstance(result, str):
            try:
                return json.loads(result)
            except ValueError:
                return result
        return result

    async def _run(
        self,
        mode: str,
        conversation_id: str,
        persona: str,
        model,
        messages: List[BaseMessage],
        tools: List,
    ) -> AsyncIterator[str]:
        tools_by_name = {t.name: t for t in tools}
        text_parts: List[str] = []
        tool_results: List[Dict[str, Any]] = []

        try:
            for step in range(1, self.max_steps + 1):
                aggregate: Optional[AIMessageChunk] = None
                async for chunk in model.astream(messages):
                    piece = chunk_text(chunk)
                    if piece:
                        text_parts.append(piece)
                        yield piece
                    aggregate = chunk if aggregate is None else aggregate + chunk

                if aggregate is None or not aggregate.tool_calls:
                    break

                messages.append(AIMessage(content=aggregate.content, tool_calls=aggregate.tool_calls))
                for call in aggregate.tool_calls:
                    result = await self._call_tool(tools_by_name, call)
                    log.info(
                        "Tool executed | conversation_id=%s | step=%d | tool=%s | success=%s",
                        conversation_id,
                        step,
                        call.get("name"),
                        result.get("success") if isinstance(result, dict) else None,
                    )
                    tool_results.append({"tool": call.get("name"), "args": call.get("args"), "result": result})
                    messages.append(
                        ToolMessage(
                            content=json.dumps(result, default=str),
                            tool_call_id=call.get("id") or new_id(),
                            name=call.get("name"),
                        )
                    )
            else:
                log.warning("Tool step limit reached | conversation_id=%s | steps=%d", conversation_id, self.max_steps)
        except Exception:
            log.exception("Model stream failed | conversation_id=%s", conversation_id)
            yield "\n\n[The response was interrupted by an upstream error. Please try again.]"
            return

        await self._finalize(mode, conversation_id, persona, "".join(text_parts), tool_results)

    async def _finalize(
        self,
        mode: str,
        conversation_id: str,
        persona: str,
        text: str,
        tool_results: List[Dict[str, Any]],
    ) -> None:
        metadata = {"persona": persona}
        if tool_results:
            metadata["tool_results"] = tool_results
        try:
            await self.stores[mode].messages.append(
                conversation_id,
                "assistant",
                text,
                created_at=utcnow(),
                metadata=json.loads(json.dumps(metadata, default=str)),
            )
        except EconomistException as e:
            log.error(
                "Failed to persist assistant message | conversation_id=%s | error=%s",
                conversation_id,
                str(e),
            )
        await self._cache_push(conversation_id, "assistant", text)
        log.info(
            "Chat turn completed | mode=%s | conversation_id=%s | chars=%d | tools=%d",
            mode,
            conversation_id,
            len(text),
            len(tool_results),
        )
