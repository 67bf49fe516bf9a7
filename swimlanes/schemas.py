from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

CARD_COLORS = {
    "red": "#ef4444",
    "blue": "#3b82f6",
    "green": "#10b981",
    "yellow": "#f59e0b",
    "purple": "#a855f7",
    "gray": "#6b7280",
}

CardColor = Literal["red", "blue", "green", "yellow", "purple", "gray"]


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    requestId: Optional[str] = None


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str = "1.0.0"


class BoardIn(BaseModel):
    name: str = Field(min_length=1, max_length=140)


class BoardPatch(BaseModel):
    name: str = Field(min_length=1, max_length=140)


class BoardOut(BaseModel):
    id: int
    name: str
    createdAt: datetime
    updatedAt: datetime


class BoardsPage(BaseModel):
    boards: list[BoardOut]


class ColumnIn(BaseModel):
    name: str = Field(min_length=1, max_length=80)


class ColumnPatch(BaseModel):
    name: str = Field(min_length=1, max_length=80)


class ColumnMove(BaseModel):
    index: int = Field(ge=0)


class ColumnOut(BaseModel):
    id: int
    boardId: int
    name: str
    position: int
    createdAt: datetime
    updatedAt: datetime


class CardIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=8000)
    color: Optional[CardColor] = None


class CardPatch(BaseModel):
    """Partial card update; only fields present in the request are applied."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=8000)
    color: Optional[CardColor] = None


class CardMove(BaseModel):
    toColumnId: Optional[int] = None
    index: Optional[int] = Field(default=None, ge=0)


class CardOut(BaseModel):
    id: int
    boardId: int
    columnId: int
    title: str
    description: Optional[str]
    color: Optional[CardColor]
    colorHex: str
    position: int
    archivedAt: Optional[datetime]
    createdAt: datetime
    updatedAt: datetime


class ArchivedCardOut(CardOut):
    columnName: str


class ArchivedCardsPage(BaseModel):
    cards: list[ArchivedCardOut]


class BoardView(BaseModel):
    board: BoardOut
    columns: list[ColumnOut]
    cards: list[CardOut]
    archivedCount: int


class RebalanceOut(BaseModel):
    rebalanced: int
