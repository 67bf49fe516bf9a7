from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .db import Board, Card, ColumnModel, as_utc, create_db_engine, init_db, make_session_factory
from .errors import SwimlanesError
from .logging import setup_logging
from .schemas import (
    CARD_COLORS,
    ArchivedCardOut,
    ArchivedCardsPage,
    BoardIn,
    BoardOut,
    BoardPatch,
    BoardsPage,
    BoardView,
    CardIn,
    CardMove,
    CardOut,
    CardPatch,
    ColumnIn,
    ColumnMove,
    ColumnOut,
    ColumnPatch,
    ErrorEnvelope,
    Health,
    RebalanceOut,
    Version,
)
from .storage import Storage

VERSION = "1.0.0"

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


# === Helpers ===


def board_out(board: Board) -> BoardOut:
    return BoardOut(
        id=board.id,
        name=board.name,
        createdAt=as_utc(board.created_at),
        updatedAt=as_utc(board.updated_at),
    )


def column_out(column: ColumnModel) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        boardId=column.board_id,
        name=column.name,
        position=column.position,
        createdAt=as_utc(column.created_at),
        updatedAt=as_utc(column.updated_at),
    )


def card_out(card: Card) -> CardOut:
    return CardOut(
        id=card.id,
        boardId=card.board_id,
        columnId=card.column_id,
        title=card.title,
        description=card.description,
        color=card.color,
        colorHex=CARD_COLORS.get(card.color or "", CARD_COLORS["gray"]),
        position=card.position,
        archivedAt=as_utc(card.archived_at),
        createdAt=as_utc(card.created_at),
        updatedAt=as_utc(card.updated_at),
    )


def get_storage(request: Request) -> Iterator[Storage]:
    session = request.app.state.session_factory()
    try:
        yield Storage(session, rebalance_threshold=request.app.state.settings.rebalance_threshold)
    finally:
        session.close()


async def handle_domain_error(request: Request, exc: SwimlanesError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    envelope = ErrorEnvelope(
        code=exc.code,
        message=exc.message,
        details=exc.details or None,
        requestId=str(uuid.uuid4()),
    )
    return JSONResponse(status_code=exc.status_code, content={"error": envelope.model_dump()})


# === Health & metadata ===


@router.get("/health", response_model=Health)
def health() -> Health:
    return Health()


@router.get("/version", response_model=Version)
def version() -> Version:
    return Version(version=VERSION)


# === Board endpoints ===


@router.post("/boards", response_model=BoardOut, status_code=201)
def create_board(payload: BoardIn, storage: Storage = Depends(get_storage)):
    return board_out(storage.create_board(payload.name))


@router.get("/boards", response_model=BoardsPage)
def list_boards(storage: Storage = Depends(get_storage)):
    return BoardsPage(boards=[board_out(b) for b in storage.list_boards()])


@router.get("/boards/{board_id}", response_model=BoardView)
def get_board(board_id: int, storage: Storage = Depends(get_storage)):
    board = storage.get_board(board_id)
    return BoardView(
        board=board_out(board),
        columns=[column_out(c) for c in storage.list_columns(board_id)],
        cards=[card_out(c) for c in storage.list_board_cards(board_id)],
        archivedCount=storage.archived_count(board_id),
    )


@router.patch("/boards/{board_id}", response_model=BoardOut)
def rename_board(board_id: int, payload: BoardPatch, storage: Storage = Depends(get_storage)):
    return board_out(storage.rename_board(board_id, payload.name))


@router.delete("/boards/{board_id}", status_code=204)
def delete_board(board_id: int, storage: Storage = Depends(get_storage)):
    storage.delete_board(board_id)
    return Response(status_code=204)


# === Column endpoints ===


@router.get("/boards/{board_id}/columns", response_model=list[ColumnOut])
def list_columns(board_id: int, storage: Storage = Depends(get_storage)):
    storage.get_board(board_id)
    return [column_out(c) for c in storage.list_columns(board_id)]


@router.post("/boards/{board_id}/columns", response_model=ColumnOut, status_code=201)
def create_column(board_id: int, payload: ColumnIn, storage: Storage = Depends(get_storage)):
    return column_out(storage.create_column(board_id, payload.name))


@router.post("/boards/{board_id}/columns:rebalance", response_model=RebalanceOut)
def rebalance_columns(board_id: int, storage: Storage = Depends(get_storage)):
    return RebalanceOut(rebalanced=storage.rebalance_columns(board_id))


@router.patch("/boards/{board_id}/columns/{column_id}", response_model=ColumnOut)
def rename_column(
    board_id: int,
    column_id: int,
    payload: ColumnPatch,
    storage: Storage = Depends(get_storage),
):
    return column_out(storage.rename_column(board_id, column_id, payload.name))


@router.post("/boards/{board_id}/columns/{column_id}:move", response_model=ColumnOut)
def move_column(
    board_id: int,
    column_id: int,
    payload: ColumnMove,
    storage: Storage = Depends(get_storage),
):
    return column_out(storage.move_column(board_id, column_id, payload.index))


@router.delete("/boards/{board_id}/columns/{column_id}", status_code=204)
def delete_column(board_id: int, column_id: int, storage: Storage = Depends(get_storage)):
    storage.delete_column(board_id, column_id)
    return Response(status_code=204)


# === Card endpoints ===


@router.get("/boards/{board_id}/columns/{column_id}/cards", response_model=list[CardOut])
def list_cards(board_id: int, column_id: int, storage: Storage = Depends(get_storage)):
    column = storage.get_column(board_id, column_id)
    return [card_out(c) for c in storage.list_cards(column.id)]


@router.post("/boards/{board_id}/columns/{column_id}/cards", response_model=CardOut, status_code=201)
def create_card(
    board_id: int,
    column_id: int,
    payload: CardIn,
    storage: Storage = Depends(get_storage),
):
    card = storage.create_card(
        board_id,
        column_id,
        payload.title,
        payload.description,
        payload.color,
    )
    return card_out(card)


@router.post("/boards/{board_id}/columns/{column_id}/cards:rebalance", response_model=RebalanceOut)
def rebalance_cards(board_id: int, column_id: int, storage: Storage = Depends(get_storage)):
    return RebalanceOut(rebalanced=storage.rebalance_cards(board_id, column_id))


@router.get("/boards/{board_id}/cards:archived", response_model=ArchivedCardsPage)
def list_archived_cards(board_id: int, storage: Storage = Depends(get_storage)):
    cards = [
        ArchivedCardOut(**card_out(card).model_dump(), columnName=column_name)
        for card, column_name in storage.list_archived_cards(board_id)
    ]
    return ArchivedCardsPage(cards=cards)


@router.patch("/boards/{board_id}/cards/{card_id}", response_model=CardOut)
def update_card(
    board_id: int,
    card_id: int,
    payload: CardPatch,
    storage: Storage = Depends(get_storage),
):
    return card_out(storage.update_card(board_id, card_id, payload))


@router.post("/boards/{board_id}/cards/{card_id}:move", response_model=CardOut)
def move_card(
    board_id: int,
    card_id: int,
    payload: CardMove,
    storage: Storage = Depends(get_storage),
):
    card = storage.move_card(board_id, card_id, payload.toColumnId, payload.index)
    return card_out(card)


@router.post("/boards/{board_id}/cards/{card_id}:archive", response_model=CardOut)
def archive_card(board_id: int, card_id: int, storage: Storage = Depends(get_storage)):
    return card_out(storage.archive_card(board_id, card_id))


@router.post("/boards/{board_id}/cards/{card_id}:restore", response_model=CardOut)
def restore_card(board_id: int, card_id: int, storage: Storage = Depends(get_storage)):
    return card_out(storage.restore_card(board_id, card_id))


@router.delete("/boards/{board_id}/cards/{card_id}", status_code=204)
def delete_card(board_id: int, card_id: int, storage: Storage = Depends(get_storage)):
    storage.delete_card_permanently(board_id, card_id)
    return Response(status_code=204)


# === Application factory ===


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    engine = create_db_engine(settings.database_url, echo=settings.sql_echo)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        init_db(engine)
        logger.info("Database initialized at %s", engine.url.render_as_string(hide_password=True))
        yield
        engine.dispose()
        logger.info("Shutting down...")

    app = FastAPI(title="Swimlanes API", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.add_exception_handler(SwimlanesError, handle_domain_error)
    app.include_router(router)
    return app


app = create_app()
