from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .db import Board, Card, ColumnModel, now_utc
from .errors import (
    CardNotActive,
    CardNotArchived,
    InvalidInput,
    NoColumnsAvailable,
    NotFound,
    PositionCollision,
)
from .positioning import (
    REBALANCE_THRESHOLD,
    Positioned,
    append_position,
    needs_rebalance,
    rebalance_positions,
    reorder_position,
)
from .schemas import CardPatch

logger = logging.getLogger(__name__)

DELETED_COLUMN_NAME = "(deleted)"


def _clean_text(value: Optional[str], label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise InvalidInput(f"{label} cannot be empty")
    return cleaned


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class Storage:
    """SQLAlchemy-backed store for boards, columns and cards.

    Every public mutation runs as one transaction on the injected session,
    so a rebalance batch and the write that needed it commit together or not
    at all.
    """

    def __init__(self, session: Session, rebalance_threshold: int = REBALANCE_THRESHOLD) -> None:
        self.session = session
        self.rebalance_threshold = rebalance_threshold

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # === Position helpers ===

    def _apply_positions(self, siblings: Sequence[Positioned], pairs: list[tuple[int, int]]) -> None:
        by_id = {item.id: item for item in siblings}
        for item_id, position in pairs:
            by_id[item_id].position = position
        self.session.flush()

    def _place(self, siblings: Sequence[Positioned], moved: Positioned, index: int) -> int:
        try:
            return reorder_position(siblings, moved, index)
        except PositionCollision as exc:
            logger.info(
                "Position collision between %s and %s, rebalancing %d siblings",
                exc.lower,
                exc.upper,
                len(siblings),
            )
            self._apply_positions(siblings, rebalance_positions(siblings))
            return reorder_position(siblings, moved, index)

    def _maintain(self, siblings: Sequence[Positioned]) -> bool:
        if not needs_rebalance(siblings, self.rebalance_threshold):
            return False
        logger.info("Gap below %d, rebalancing %d siblings", self.rebalance_threshold, len(siblings))
        self._apply_positions(siblings, rebalance_positions(siblings))
        return True

    # === Board operations ===

    def create_board(self, name: str) -> Board:
        board = Board(name=_clean_text(name, "Board name"))
        with self._transaction():
            self.session.add(board)
        logger.info("Created board %s", board.id)
        return board

    def list_boards(self) -> list[Board]:
        stmt = select(Board).order_by(Board.created_at.desc(), Board.id.desc())
        return list(self.session.scalars(stmt))

    def get_board(self, board_id: int) -> Board:
        board = self.session.get(Board, board_id)
        if board is None:
            raise NotFound(f"Board {board_id} not found")
        return board

    def rename_board(self, board_id: int, name: str) -> Board:
        board = self.get_board(board_id)
        with self._transaction():
            board.name = _clean_text(name, "Board name")
        return board

    def delete_board(self, board_id: int) -> None:
        board = self.get_board(board_id)
        with self._transaction():
            self.session.delete(board)
        logger.info("Deleted board %s with its columns and cards", board_id)

    def archived_count(self, board_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(Card)
            .where(Card.board_id == board_id, Card.archived_at.is_not(None))
        )
        return self.session.scalar(stmt) or 0

    # === Column operations ===

    def list_columns(self, board_id: int) -> list[ColumnModel]:
        stmt = (
            select(ColumnModel)
            .where(ColumnModel.board_id == board_id)
            .order_by(ColumnModel.position, ColumnModel.id)
        )
        return list(self.session.scalars(stmt))

    def get_column(self, board_id: int, column_id: int) -> ColumnModel:
        column = self.session.get(ColumnModel, column_id)
        if column is None or column.board_id != board_id:
            raise NotFound(f"Column {column_id} not found")
        return column

    def create_column(self, board_id: int, name: str) -> ColumnModel:
        self.get_board(board_id)
        with self._transaction():
            column = ColumnModel(
                board_id=board_id,
                name=_clean_text(name, "Column name"),
                position=append_position(self.list_columns(board_id)),
            )
            self.session.add(column)
        return column

    def rename_column(self, board_id: int, column_id: int, name: str) -> ColumnModel:
        column = self.get_column(board_id, column_id)
        with self._transaction():
            column.name = _clean_text(name, "Column name")
        return column

    def move_column(self, board_id: int, column_id: int, index: int) -> ColumnModel:
        column = self.get_column(board_id, column_id)
        with self._transaction():
            siblings = self.list_columns(board_id)
            position = self._place(siblings, column, index)
            if position != column.position:
                column.position = position
                self.session.flush()
                self._maintain(self.list_columns(board_id))
        return column

    def rebalance_columns(self, board_id: int) -> int:
        self.get_board(board_id)
        with self._transaction():
            siblings = self.list_columns(board_id)
            self._apply_positions(siblings, rebalance_positions(siblings))
        logger.info("Rebalanced %d columns of board %s", len(siblings), board_id)
        return len(siblings)

    def delete_column(self, board_id: int, column_id: int) -> None:
        column = self.get_column(board_id, column_id)
        with self._transaction():
            # Archived cards stay behind so they can be restored elsewhere.
            self.session.execute(
                delete(Card).where(Card.column_id == column_id, Card.archived_at.is_(None))
            )
            self.session.delete(column)
        logger.info("Deleted column %s of board %s", column_id, board_id)

    # === Card operations ===

    def list_cards(self, column_id: int) -> list[Card]:
        stmt = (
            select(Card)
            .where(Card.column_id == column_id, Card.archived_at.is_(None))
            .order_by(Card.position, Card.id)
        )
        return list(self.session.scalars(stmt))

    def _column_cards(self, column_id: int) -> list[Card]:
        # Archived cards keep their slot so a later restore cannot collide.
        stmt = select(Card).where(Card.column_id == column_id).order_by(Card.position, Card.id)
        return list(self.session.scalars(stmt))

    def list_board_cards(self, board_id: int) -> list[Card]:
        stmt = (
            select(Card)
            .join(ColumnModel, ColumnModel.id == Card.column_id)
            .where(Card.board_id == board_id, Card.archived_at.is_(None))
            .order_by(ColumnModel.position, ColumnModel.id, Card.position, Card.id)
        )
        return list(self.session.scalars(stmt))

    def list_archived_cards(self, board_id: int) -> list[tuple[Card, str]]:
        self.get_board(board_id)
        stmt = (
            select(Card, func.coalesce(ColumnModel.name, DELETED_COLUMN_NAME))
            .outerjoin(
                ColumnModel,
                (ColumnModel.id == Card.column_id) & (ColumnModel.board_id == Card.board_id),
            )
            .where(Card.board_id == board_id, Card.archived_at.is_not(None))
            .order_by(Card.archived_at.desc(), Card.id.desc())
        )
        return [(card, column_name) for card, column_name in self.session.execute(stmt)]

    def get_card(self, board_id: int, card_id: int) -> Card:
        card = self.session.get(Card, card_id)
        if card is None or card.board_id != board_id:
            raise NotFound(f"Card {card_id} not found")
        return card

    def create_card(
        self,
        board_id: int,
        column_id: int,
        title: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Card:
        column = self.get_column(board_id, column_id)
        with self._transaction():
            card = Card(
                board_id=column.board_id,
                column_id=column.id,
                title=_clean_text(title, "Card title"),
                description=_clean_optional(description),
                color=color,
                position=append_position(self._column_cards(column.id)),
            )
            self.session.add(card)
        return card

    def update_card(self, board_id: int, card_id: int, patch: CardPatch) -> Card:
        card = self.get_card(board_id, card_id)
        fields = patch.model_fields_set
        with self._transaction():
            if "title" in fields:
                card.title = _clean_text(patch.title, "Card title")
            if "description" in fields:
                card.description = _clean_optional(patch.description)
            if "color" in fields:
                card.color = patch.color
        return card

    def move_card(
        self,
        board_id: int,
        card_id: int,
        to_column_id: Optional[int] = None,
        index: Optional[int] = None,
    ) -> Card:
        """Move a live card within its column or into another column of the board.

        Without an ``index`` the card goes to the end of the target column.
        """
        card = self.get_card(board_id, card_id)
        if card.archived_at is not None:
            raise CardNotActive(f"Card {card_id} is archived")
        target_id = card.column_id if to_column_id is None else to_column_id
        target = self.session.get(ColumnModel, target_id)
        if target is None:
            raise NotFound(f"Column {target_id} not found")
        if target.board_id != card.board_id:
            raise InvalidInput("Cards cannot move to a column of another board")

        with self._transaction():
            siblings = self.list_cards(target.id)
            if target.id == card.column_id:
                position = self._place(siblings, card, len(siblings) - 1 if index is None else index)
                if position == card.position:
                    return card
            elif index is None:
                position = append_position(self._column_cards(target.id))
            else:
                position = self._place(siblings, card, index)
            card.column_id = target.id
            card.position = position
            self.session.flush()
            self._maintain(self.list_cards(target.id))
        return card

    def rebalance_cards(self, board_id: int, column_id: int) -> int:
        column = self.get_column(board_id, column_id)
        with self._transaction():
            siblings = self.list_cards(column.id)
            self._apply_positions(siblings, rebalance_positions(siblings))
        logger.info("Rebalanced %d cards of column %s", len(siblings), column_id)
        return len(siblings)

    # === Archive lifecycle ===

    def archive_card(self, board_id: int, card_id: int) -> Card:
        card = self.get_card(board_id, card_id)
        if card.archived_at is not None:
            raise CardNotActive(f"Card {card_id} is already archived")
        with self._transaction():
            card.archived_at = now_utc()
        return card

    def restore_card(self, board_id: int, card_id: int) -> Card:
        """Bring an archived card back, re-homing it if its column is gone.

        The card keeps its column and stored position when the column still
        exists. Otherwise it is appended to the board's first column.
        The live siblings are then checked like any other position write.
        """
        card = self.get_card(board_id, card_id)
        if card.archived_at is None:
            raise CardNotArchived(f"Card {card_id} is not archived")

        column = self.session.get(ColumnModel, card.column_id)
        with self._transaction():
            if column is None or column.board_id != card.board_id:
                columns = self.list_columns(card.board_id)
                if not columns:
                    logger.warning("Cannot restore card %s: board %s has no columns", card_id, card.board_id)
                    raise NoColumnsAvailable("Cannot restore card: board has no columns")
                first = columns[0]
                logger.info("Re-homing card %s from deleted column %s to %s", card_id, card.column_id, first.id)
                card.column_id = first.id
                card.position = append_position(self._column_cards(first.id))
            card.archived_at = None
            self.session.flush()
            self._maintain(self.list_cards(card.column_id))
        return card

    def delete_card_permanently(self, board_id: int, card_id: int) -> None:
        card = self.get_card(board_id, card_id)
        if card.archived_at is None:
            raise CardNotArchived(f"Card {card_id} must be archived before it is deleted")
        with self._transaction():
            self.session.delete(card)
