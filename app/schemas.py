from __future__ import annotations

from typing import Optional, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt

from app.rag.itinerary import Itinerary


Mode = Literal["chat", "itinerary"]


class Message(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = ""


class ChatRequest(BaseModel):
    mode: Mode
    messages: Optional[List[Message]] = None
    city: Optional[str] = None
    days: Optional[int] = Field(default=None, ge=1)
    style: Optional[str] = None
    budget: Optional[str] = None
    interests: Optional[str] = None


class SourceItem(BaseModel):
    id: str                 # citation token, e.g. "S1"
    title: str
    url: str


class ChatResponse(BaseModel):
    text: str
    sources: List[SourceItem] = Field(default_factory=list)
    itinerary: Optional[Itinerary] = None
    cached: bool = False
    request_id: Optional[str] = None


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: Optional[str] = Field(default=None, alias="messageId")
    # strict so JSON booleans reach the store instead of becoming 1/0
    rating: Optional[Union[StrictInt, StrictBool]] = None
    mode: Optional[str] = None
    question: Optional[str] = None
    answer: Optional[str] = None
    sources: List[SourceItem] = Field(default_factory=list)


class FeedbackResponse(BaseModel):
    ok: bool = True
    storage: Literal["memory", "file"]


class ErrorResponse(BaseModel):
    error: str
