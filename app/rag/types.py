from __future__ import annotations

from typing import Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


KB_ID_PREFIX = "kb-"

SourceKind = Literal["all", "web", "kb"]


class SourceDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)              # e.g. "uz-visa" / "kb-transport-trains-md"
    title: str = ""
    url: str = ""
    content: str = ""
    tags: Optional[List[str]] = None


class Chunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)              # "<source_id>-<ordinal>", ordinal from 1
    source_id: str = Field(min_length=1)
    title: str = ""
    url: str = ""
    content: str = ""
    term_vector: Dict[str, float] = Field(default_factory=dict)
    norm: float = Field(default=0.0, ge=0.0)

    @property
    def is_kb(self) -> bool:
        return self.source_id.startswith(KB_ID_PREFIX)


class Index(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunks: Tuple[Chunk, ...] = ()
    idf: Dict[str, float] = Field(default_factory=dict)


class RetrievedChunk(BaseModel):
    id: str
    source_id: str
    title: str
    url: str
    content: str
    score: float = Field(gt=0.0, le=1.0)
