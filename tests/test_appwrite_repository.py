"""Tests for the Appwrite document-store repository against an in-memory server."""

from __future__ import annotations

import asyncio
import json

import pytest

from habitsync.errors import NetworkError, NotFoundError, UnauthenticatedError
from habitsync.infra.repositories.appwrite import query
from habitsync.models import Completion, Habit
from habitsync.services.streaks import StreakMetrics

from conftest import OTHER_OWNER, OWNER, day


def new_habit(title: str = "Walk", owner: str = OWNER, created: int = 1) -> Habit:
    return Habit(owner_id=owner, title=title, created_at=day(created), updated_at=day(created))


def test_query_encoding():
    assert json.loads(query("equal", "userId", ["u1"])) == {
        "method": "equal",
        "attribute": "userId",
        "values": ["u1"],
    }
    assert json.loads(query("limit", values=[10])) == {"method": "limit", "values": [10]}


class TestHabits:
    def test_create_uses_client_id_and_camel_case(self, appwrite_repo, appwrite_server):
        habit = appwrite_repo.create_habit(new_habit())
        document = appwrite_server.collections["habits"][habit.id]
        assert document["userId"] == OWNER
        assert document["streakCount"] == 0
        assert document["isActive"] is True
        assert appwrite_repo.get_habit(habit.id, owner_id=OWNER).title == "Walk"

    def test_list_filters_owner_and_orders_newest_first(self, appwrite_repo):
        old = appwrite_repo.create_habit(new_habit("Old", created=1))
        new = appwrite_repo.create_habit(new_habit("New", created=2))
        appwrite_repo.create_habit(new_habit("Theirs", owner=OTHER_OWNER))
        assert [h.id for h in appwrite_repo.list_habits(OWNER)] == [new.id, old.id]

    def test_foreign_habit_looks_missing(self, appwrite_repo):
        habit = appwrite_repo.create_habit(new_habit())
        with pytest.raises(NotFoundError):
            appwrite_repo.get_habit(habit.id, owner_id=OTHER_OWNER)

    def test_soft_delete(self, appwrite_repo, appwrite_server):
        habit = appwrite_repo.create_habit(new_habit())
        appwrite_repo.delete_habit(habit.id, owner_id=OWNER)
        assert appwrite_server.collections["habits"][habit.id]["isActive"] is False
        assert appwrite_repo.list_habits(OWNER) == []
        assert len(appwrite_repo.list_habits(OWNER, include_inactive=True)) == 1
        with pytest.raises(NotFoundError):
            appwrite_repo.get_habit(habit.id, owner_id=OWNER)

    def test_auth_failure_maps_to_unauthenticated(self, appwrite_repo, appwrite_server):
        appwrite_server.fail_next("GET", "habits", status=401)
        with pytest.raises(UnauthenticatedError):
            appwrite_repo.list_habits(OWNER)


class TestCompletions:
    def test_record_patches_habit(self, appwrite_repo, appwrite_server):
        habit = appwrite_repo.create_habit(new_habit())
        completion = appwrite_repo.record_completion(
            Completion(habit_id=habit.id, completed_at=day(2)), owner_id=OWNER
        )
        document = appwrite_server.collections["habits"][habit.id]
        assert document["streakCount"] == 1
        assert completion.completed_at == day(2)
        assert [c.id for c in appwrite_repo.list_completions(habit.id, owner_id=OWNER)] == [
            completion.id
        ]

    def test_failed_habit_patch_removes_completion(self, appwrite_repo, appwrite_server):
        habit = appwrite_repo.create_habit(new_habit())
        appwrite_server.fail_next("PATCH", "habits")

        with pytest.raises(NetworkError):
            appwrite_repo.record_completion(Completion(habit_id=habit.id), owner_id=OWNER)

        assert appwrite_server.collections["habit_completions"] == {}
        assert appwrite_server.collections["habits"][habit.id]["streakCount"] == 0

    def test_failed_create_leaves_habit_untouched(self, appwrite_repo, appwrite_server):
        habit = appwrite_repo.create_habit(new_habit())
        appwrite_server.fail_next("POST", "habit_completions")
        with pytest.raises(NetworkError):
            appwrite_repo.record_completion(Completion(habit_id=habit.id), owner_id=OWNER)
        assert appwrite_server.collections["habits"][habit.id]["streakCount"] == 0

    def test_delete_completion_checks_owner(self, appwrite_repo):
        habit = appwrite_repo.create_habit(new_habit())
        completion = appwrite_repo.record_completion(Completion(habit_id=habit.id), owner_id=OWNER)
        with pytest.raises(NotFoundError):
            appwrite_repo.delete_completion(completion.id, owner_id=OTHER_OWNER)
        appwrite_repo.delete_completion(completion.id, owner_id=OWNER)
        assert appwrite_repo.list_completions(habit.id, owner_id=OWNER) == []

    def test_completions_between(self, appwrite_repo):
        walk = appwrite_repo.create_habit(new_habit("Walk"))
        read = appwrite_repo.create_habit(new_habit("Read"))
        for habit, n in ((walk, 1), (read, 2), (walk, 2), (walk, 3)):
            appwrite_repo.record_completion(
                Completion(habit_id=habit.id, completed_at=day(n)), owner_id=OWNER
            )
        found = appwrite_repo.list_completions_between(OWNER, day(2, hour=0), day(3, hour=0))
        assert sorted(c.habit_id for c in found) == sorted([walk.id, read.id])


def test_facade_fetches_completions_per_habit(appwrite_repo, appwrite_server, make_facade):
    """Without eager loading the facade issues one completions query per habit."""

    facade = make_facade(appwrite_repo)

    async def scenario():
        water = await facade.create_habit(OWNER, {"title": "Drink Water"})
        stretch = await facade.create_habit(OWNER, {"title": "Stretch"})
        for n in (1, 2, 3):
            await facade.complete_habit(water.id, OWNER, completed_at=day(n))
        await facade.complete_habit(stretch.id, OWNER, completed_at=day(1))
        appwrite_server.requests.clear()
        return water, await facade.list_habits(OWNER)

    water, habits = asyncio.run(scenario())

    completion_queries = [
        path for method, path in appwrite_server.requests
        if method == "GET" and path.endswith("/collections/habit_completions/documents")
    ]
    assert len(completion_queries) == 2
    by_id = {h.id: h for h in habits}
    assert facade.get_streak(by_id[water.id]) == StreakMetrics(streak=3, best_streak=3, total=3)
