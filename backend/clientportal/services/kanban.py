"""Kanban board model and drag-and-drop moves.

A board groups a project's tasks into the four status columns. Moves are
applied optimistically to a copy of the board; if persisting the move fails
the optimistic copy is dropped and the authoritative board is fetched again.
Concurrent moves of the same task are last-write-wins.
"""

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from uuid import UUID

import structlog

from clientportal.models.project import TASK_STATUSES, Task

logger = structlog.get_logger()


@dataclass(frozen=True)
class BoardCard:
    """The slice of a task the board needs."""

    id: UUID
    title: str
    status: str
    position: int
    due_date: date | None = None
    assignee_id: UUID | None = None

    @classmethod
    def from_task(cls, task: Task) -> "BoardCard":
        return cls(
            id=task.id,
            title=task.title,
            status=task.status,
            position=task.position,
            due_date=task.due_date,
            assignee_id=task.assignee_id,
        )


@dataclass(frozen=True)
class TaskMove:
    """Drop of ``task_id`` into ``to_status`` at ``to_index``."""

    task_id: UUID
    to_status: str
    to_index: int


@dataclass
class KanbanBoard:
    project_id: UUID
    columns: dict[str, list[BoardCard]] = field(
        default_factory=lambda: {status: [] for status in TASK_STATUSES}
    )

    @classmethod
    def from_tasks(cls, project_id: UUID, tasks: Iterable[Task]) -> "KanbanBoard":
        board = cls(project_id=project_id)
        for task in tasks:
            # Unknown statuses should not exist; park them in the first column
            status = task.status if task.status in board.columns else TASK_STATUSES[0]
            board.columns[status].append(BoardCard.from_task(task))
        for cards in board.columns.values():
            cards.sort(key=lambda c: c.position)
        return board

    def locate(self, task_id: UUID) -> tuple[str, int] | None:
        """Column and index of a card, or None."""
        for status, cards in self.columns.items():
            for index, card in enumerate(cards):
                if card.id == task_id:
                    return status, index
        return None

    def copy(self) -> "KanbanBoard":
        return KanbanBoard(
            project_id=self.project_id,
            columns={status: list(cards) for status, cards in self.columns.items()},
        )

    def move(self, move: TaskMove) -> tuple["KanbanBoard", BoardCard]:
        """Return a new board with the move applied, plus the moved card.

        Positions in the touched columns are renumbered from zero. The
        destination index is clamped to the column bounds.

        Raises:
            KeyError: unknown destination column or task not on the board
        """
        if move.to_status not in self.columns:
            raise KeyError(f"Unknown status column: {move.to_status}")
        found = self.locate(move.task_id)
        if found is None:
            raise KeyError(f"Task {move.task_id} is not on this board")
        from_status, from_index = found

        board = self.copy()
        card = board.columns[from_status].pop(from_index)
        destination = board.columns[move.to_status]
        to_index = max(0, min(move.to_index, len(destination)))
        destination.insert(to_index, replace(card, status=move.to_status))

        for status in {from_status, move.to_status}:
            board.columns[status] = [
                replace(c, position=i) for i, c in enumerate(board.columns[status])
            ]
        return board, board.columns[move.to_status][to_index]

    def is_noop(self, move: TaskMove) -> bool:
        """Dropped back into the same column at the same index."""
        found = self.locate(move.task_id)
        return found is not None and found == (move.to_status, move.to_index)

    def changed_cards(self, other: "KanbanBoard") -> list[BoardCard]:
        """Cards whose status or position differs from ``other``."""
        before = {c.id: c for cards in other.columns.values() for c in cards}
        return [
            card
            for cards in self.columns.values()
            for card in cards
            if before.get(card.id) is None
            or (before[card.id].status, before[card.id].position) != (card.status, card.position)
        ]

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "columns": {
                status: [
                    {
                        "id": c.id,
                        "title": c.title,
                        "status": c.status,
                        "position": c.position,
                        "due_date": c.due_date,
                        "assignee_id": c.assignee_id,
                    }
                    for c in cards
                ]
                for status, cards in self.columns.items()
            },
        }


@dataclass
class MoveOutcome:
    board: KanbanBoard
    applied: bool
    moved: BoardCard | None = None
    error: str | None = None


async def apply_move(
    board: KanbanBoard,
    move: TaskMove,
    persist: Callable[[KanbanBoard, KanbanBoard, BoardCard], Awaitable[None]],
    refetch: Callable[[], Awaitable[KanbanBoard]],
) -> MoveOutcome:
    """Apply ``move`` optimistically, then persist it.

    ``persist(previous, updated, moved_card)`` writes the change. When it
    raises, the optimistic board is discarded and ``refetch()`` supplies the
    authoritative board returned in the outcome.
    """
    if board.is_noop(move):
        return MoveOutcome(board=board, applied=True)

    updated, card = board.move(move)
    try:
        await persist(board, updated, card)
    except Exception as e:
        logger.warning(
            "task_move_failed",
            task_id=str(move.task_id),
            to_status=move.to_status,
            error=str(e),
        )
        return MoveOutcome(board=await refetch(), applied=False, error=str(e))

    return MoveOutcome(board=updated, applied=True, moved=card)
