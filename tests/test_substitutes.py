"""Tests for sidebar view filtering and degraded-mode substitute data."""
from datetime import date, datetime

import pytest

from nowandlater.substitutes import SubstituteData, filter_task_rows

TODAY = date(2024, 5, 10)

ROWS = [
    {"id": "inbox", "projectId": None, "dueDate": None, "isCompleted": False},
    {"id": "overdue", "projectId": "p1", "dueDate": "2024-05-01", "isCompleted": False},
    {"id": "due-today", "projectId": "p1", "dueDate": "2024-05-10T09:00:00", "isCompleted": False},
    {"id": "later", "projectId": "p2", "dueDate": "2024-06-01", "isCompleted": False},
    {"id": "done", "projectId": "p2", "dueDate": "2024-05-02", "isCompleted": "true"},
]


def ids(rows):
    return [row["id"] for row in rows]


class TestFilterTaskRows:
    """Tests for filter_task_rows()"""

    @pytest.mark.parametrize(
        "view, expected",
        [
            ("inbox", ["inbox"]),
            ("today", ["overdue", "due-today"]),
            ("upcoming", ["later"]),
            ("anytime", ["inbox"]),
            ("logbook", ["done"]),
            (None, ["inbox", "overdue", "due-today", "later", "done"]),
        ],
    )
    def test_views(self, view, expected):
        assert ids(filter_task_rows(ROWS, None, view, TODAY)) == expected

    def test_project_wins_over_view(self):
        assert ids(filter_task_rows(ROWS, "p2", "inbox", TODAY)) == ["later", "done"]

    def test_unparseable_due_date_treated_as_none(self):
        rows = [{"id": "x", "dueDate": "someday", "isCompleted": False}]

        assert ids(filter_task_rows(rows, None, "anytime", TODAY)) == ["x"]
        assert ids(filter_task_rows(rows, None, "today", TODAY)) == []


class TestSubstituteData:
    """Tests for SubstituteData."""

    @pytest.fixture
    def substitutes(self):
        return SubstituteData(clock=lambda: datetime(2024, 5, 10, 12, 0).timestamp())

    def test_sample_views_follow_clock(self, substitutes):
        assert ids(substitutes.respond("getTasks", [None, "today"])) == ["2"]
        assert ids(substitutes.respond("getTasks", [None, "upcoming"])) == ["1", "6"]
        assert ids(substitutes.respond("getTasks", [None, "inbox"])) == ["3", "6"]

    def test_writes_echo_input_with_local_ids(self, substitutes):
        first = substitutes.respond("createTask", ["Offline one"])
        second = substitutes.respond("createTask", ["Offline two", "", "1"])

        assert (first["id"], second["id"]) == ("local_task_1", "local_task_2")
        assert second["projectId"] == "1"
        assert len(substitutes.respond("getTasks", ["1", None])) == 4

    def test_responses_are_copies(self, substitutes):
        areas = substitutes.respond("getAreas", [])
        areas[0]["name"] = "Mutated"

        assert substitutes.respond("getAreas", [])[0]["name"] == "Personal"

    def test_unknown_action_returns_none(self, substitutes):
        assert substitutes.respond("createProjectDocument", ["1", "Kitchen"]) is None

    def test_completion_and_reorder(self, substitutes):
        substitutes.respond("updateTaskCompletion", ["2", True])
        substitutes.respond("reorderTasks", [["7", "4", "1"]])

        logbook = substitutes.respond("getTasks", [None, "logbook"])
        project = {row["id"]: row["sortOrder"] for row in substitutes.respond("getTasks", ["1"])}

        assert ids(logbook) == ["2"]
        assert project == {"1": 3, "4": 2, "7": 1}

    def test_reset_restores_sample(self, substitutes):
        substitutes.respond("deleteArea", ["1"])
        substitutes.reset()

        assert [a["id"] for a in substitutes.respond("getAreas", [])] == ["1", "2"]
