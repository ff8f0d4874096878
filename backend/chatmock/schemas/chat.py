from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Tuple

MessageRole = Literal['user', 'assistant', 'system']


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str


class AttachmentRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_name: str
    mime_type: str
    size_bytes: int = Field(0, ge=0)


class ChatRequest(BaseModel):
    """Canonical, transport-agnostic view of one inbound chat call."""
    model_config = ConfigDict(frozen=True)

    messages: Tuple[ChatMessage, ...] = ()
    attachments: Tuple[AttachmentRef, ...] = ()
    streaming: bool = False


class ReplyFragment(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = ''
    is_terminal: bool = False


TERMINAL_FRAGMENT = ReplyFragment(is_terminal=True)


class HealthStatus(BaseModel):
    status: str
    timestamp: str
    uptime: float


class ServiceInfo(BaseModel):
    name: str
    version: str
    features: List[str]
    endpoints: Dict[str, str]
