from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageRequest(BaseModel):
    """Request payload for the message API; the client keeps the dialog context."""
    model_config = ConfigDict(extra="allow")

    input: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None


class Intent(BaseModel):
    """Classified intent with its confidence."""
    model_config = ConfigDict(extra="allow")

    intent: str
    confidence: float = 0.0


class Entity(BaseModel):
    """Recognized entity value."""
    model_config = ConfigDict(extra="allow")

    entity: str
    value: str = ""


class DialogResponse(BaseModel):
    """Dialog engine reply, enriched in place and returned to the caller."""
    model_config = ConfigDict(extra="allow")

    intents: List[Intent] = Field(default_factory=list)
    entities: List[Entity] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None

    @property
    def top_intent(self) -> Optional[str]:
        return self.intents[0].intent if self.intents else None

    @property
    def output_text(self) -> List[str]:
        if self.output is None:
            return []
        return self.output.setdefault("text", [])

    def set_output_text(self, lines: List[str]) -> None:
        if self.output is None:
            self.output = {}
        self.output["text"] = lines


class AuditRecord(BaseModel):
    """Persisted snapshot of one request/response pair."""
    model_config = ConfigDict(frozen=True)

    id: str
    request: Dict[str, Any]
    response: Dict[str, Any]
    time: datetime


class ChatRow(BaseModel):
    """One row of the chat export table."""
    question: str = ""
    intent: str = ""
    confidence: float = 0
    entity: str = ""
    output: str = ""
    time: str = ""
