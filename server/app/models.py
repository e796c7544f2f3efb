# server/app/models.py
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class AnalyzeImageIn(BaseModel):
    imageBase64: str = Field(min_length=1)
    type: Optional[Literal["analyze", "regenerate_caption"]] = None


class ChatMessage(BaseModel):
    role: Literal["user", "ai"]
    content: str = Field(min_length=1)


class ChatIn(BaseModel):
    message: str = Field(min_length=1)
    history: Optional[List[ChatMessage]] = None


class ProviderHealthOut(BaseModel):
    provider: str
    status: str
    ok: bool
    latencyMs: Optional[int] = None
    models: List[str] = []
    detail: str = ""


class ProvidersOut(BaseModel):
    providers: List[ProviderHealthOut]
    checkedAt: str
