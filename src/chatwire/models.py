"""Pydantic models for the stream wire protocol and API schemas."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

ChunkType = Literal["token", "tool_call", "tool_result", "done", "error"]


class ToolCall(BaseModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: str
    type: Literal["tool_call"] = "tool_call"


class ToolResult(BaseModel):
    name: str
    content: str


class StreamChunk(BaseModel):
    """One unit of the stream wire protocol.

    Serialized with camelCase keys (``toolCall``, ``toolResult``, ``messageId``)
    and without unset fields, so exactly one kind-specific field appears on the
    wire. Build chunks through the ``token``/``tool_call``/... constructors.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: ChunkType
    content: str | None = None
    tool_call: ToolCall | None = Field(default=None, alias="toolCall")
    tool_result: ToolResult | None = Field(default=None, alias="toolResult")
    error: str | None = None
    message_id: str | None = Field(default=None, alias="messageId")

    @classmethod
    def token(cls, content: str, message_id: str | None = None) -> StreamChunk:
        return cls(type="token", content=content, message_id=message_id)

    @classmethod
    def for_tool_call(cls, tool_call: ToolCall, message_id: str | None = None) -> StreamChunk:
        return cls(type="tool_call", tool_call=tool_call, message_id=message_id)

    @classmethod
    def for_tool_result(cls, name: str, content: str, message_id: str | None = None) -> StreamChunk:
        return cls(type="tool_result", tool_result=ToolResult(name=name, content=content), message_id=message_id)

    @classmethod
    def done(cls) -> StreamChunk:
        return cls(type="done")

    @classmethod
    def failure(cls, error: str) -> StreamChunk:
        return cls(type="error", error=error)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# --- Conversation messages (client reconstruction target) ---


class FileAttachment(BaseModel):
    url: str
    key: str = ""
    name: str
    type: str = "application/octet-stream"
    size: int = 0


class HumanMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["human"] = "human"
    id: str
    content: str
    attachments: tuple[FileAttachment, ...] = ()


class AIMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["ai"] = "ai"
    id: str
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


class ToolMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool"] = "tool"
    id: str
    content: str
    name: str
    status: str = "success"
    tool_call_id: str = ""


class ErrorMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    id: str
    content: str


ConversationMessage = Annotated[
    Union[HumanMessage, AIMessage, ToolMessage, ErrorMessage],
    Field(discriminator="type"),
]

conversation_messages_adapter: TypeAdapter[list[ConversationMessage]] = TypeAdapter(list[ConversationMessage])


# --- Request options and thread schemas ---


class MessageOptions(BaseModel):
    model: str | None = None
    provider: str | None = None
    tools: list[str] | None = None
    allow_tool: Literal["allow", "deny"] | None = None
    approve_all_tools: bool | None = None
    attachments: list[FileAttachment] = Field(default_factory=list)


class Thread(BaseModel):
    id: str
    title: str
    created_at: str
    updated_at: str


class ThreadCreate(BaseModel):
    id: str | None = Field(default=None, max_length=200)
    title: str | None = Field(default=None, min_length=1, max_length=200)


class ThreadUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
