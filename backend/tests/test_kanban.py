"""Tests for the Kanban board model and optimistic moves."""

from uuid import uuid4

import pytest

from clientportal.services.kanban import BoardCard, KanbanBoard, TaskMove, apply_move


def _board(**columns: list[str]) -> tuple[KanbanBoard, dict[str, BoardCard]]:
    """Board whose columns hold cards titled by the given names."""
    board = KanbanBoard(project_id=uuid4())
    cards = {}
    for status, titles in columns.items():
        for position, title in enumerate(titles):
            card = BoardCard(id=uuid4(), title=title, status=status, position=position)
            board.columns[status].append(card)
            cards[title] = card
    return board, cards


def _titles(board: KanbanBoard, status: str) -> list[str]:
    return [c.title for c in board.columns[status]]


@pytest.mark.unit
class TestKanbanMove:
    def test_move_between_columns(self):
        board, cards = _board(to_do=["a", "b", "c"], in_progress=["x"])

        updated, moved = board.move(TaskMove(cards["b"].id, "in_progress", 0))

        assert _titles(updated, "to_do") == ["a", "c"]
        assert _titles(updated, "in_progress") == ["b", "x"]
        assert moved.status == "in_progress"
        assert moved.position == 0
        assert [c.position for c in updated.columns["to_do"]] == [0, 1]
        assert [c.position for c in updated.columns["in_progress"]] == [0, 1]

    def test_reorder_within_column(self):
        board, cards = _board(to_do=["a", "b", "c"])

        updated, _ = board.move(TaskMove(cards["a"].id, "to_do", 2))

        assert _titles(updated, "to_do") == ["b", "c", "a"]

    def test_move_does_not_mutate_original_board(self):
        board, cards = _board(to_do=["a", "b"])

        board.move(TaskMove(cards["a"].id, "complete", 0))

        assert _titles(board, "to_do") == ["a", "b"]
        assert _titles(board, "complete") == []

    def test_index_past_the_end_appends(self):
        board, cards = _board(to_do=["a"], complete=["x", "y"])

        updated, moved = board.move(TaskMove(cards["a"].id, "complete", 99))

        assert _titles(updated, "complete") == ["x", "y", "a"]
        assert moved.position == 2

    def test_unknown_column_raises(self):
        board, cards = _board(to_do=["a"])

        with pytest.raises(KeyError):
            board.move(TaskMove(cards["a"].id, "archived", 0))

    def test_unknown_task_raises(self):
        board, _ = _board(to_do=["a"])

        with pytest.raises(KeyError):
            board.move(TaskMove(uuid4(), "to_do", 0))

    def test_changed_cards_lists_only_touched_cards(self):
        board, cards = _board(to_do=["a", "b"], needs_review=["x"], complete=["z"])

        updated, _ = board.move(TaskMove(cards["b"].id, "needs_review", 1))

        assert {c.title for c in updated.changed_cards(board)} == {"b"}


@pytest.mark.unit
class TestApplyMove:
    async def test_successful_persist_keeps_optimistic_board(self):
        board, cards = _board(to_do=["a", "b"])
        persisted = []

        async def persist(previous, updated, card):
            persisted.append(card.id)

        async def refetch():
            raise AssertionError("refetch should not be called")

        outcome = await apply_move(board, TaskMove(cards["a"].id, "in_progress", 0), persist, refetch)

        assert outcome.applied is True
        assert persisted == [cards["a"].id]
        assert _titles(outcome.board, "in_progress") == ["a"]

    async def test_failed_persist_returns_refetched_board(self):
        board, cards = _board(to_do=["a", "b"])
        authoritative, _ = _board(to_do=["a", "b"])

        async def persist(previous, updated, card):
            raise RuntimeError("connection lost")

        async def refetch():
            return authoritative

        outcome = await apply_move(board, TaskMove(cards["a"].id, "complete", 0), persist, refetch)

        assert outcome.applied is False
        assert outcome.board is authoritative
        assert outcome.error == "connection lost"
        assert outcome.moved is None

    async def test_drop_in_place_skips_persist(self):
        board, cards = _board(to_do=["a", "b"])

        async def persist(previous, updated, card):
            raise AssertionError("persist should not be called")

        async def refetch():
            raise AssertionError("refetch should not be called")

        outcome = await apply_move(board, TaskMove(cards["b"].id, "to_do", 1), persist, refetch)

        assert outcome.applied is True
        assert outcome.board is board
