"""Tests for the observable habit cache."""

from __future__ import annotations

from habitsync.models import Completion, Habit
from habitsync.services.cache import HabitCache

from conftest import OWNER, day


def make_habit(title: str, **fields) -> Habit:
    return Habit(owner_id=OWNER, title=title, **fields)


def test_upsert_front_and_snapshot_order():
    cache = HabitCache()
    a, b = make_habit("A"), make_habit("B")
    cache.upsert(a, owner_id=OWNER, front=True)
    cache.upsert(b, owner_id=OWNER, front=True)

    assert [h.title for h in cache.snapshot()] == ["B", "A"]
    assert cache.owner_id == OWNER


def test_snapshot_is_a_deep_copy():
    cache = HabitCache()
    habit = make_habit("A")
    cache.upsert(habit, owner_id=OWNER)
    cache.snapshot()[0].completions.append(Completion(habit_id=habit.id))
    assert cache.get(habit.id).completions == []


def test_listeners_receive_snapshots_and_can_unsubscribe():
    cache = HabitCache()
    seen = []
    unsubscribe = cache.subscribe(seen.append)
    cache.upsert(make_habit("A"), owner_id=OWNER)
    unsubscribe()
    cache.upsert(make_habit("B"), owner_id=OWNER)
    assert len(seen) == 1
    assert [h.title for h in seen[0]] == ["A"]


def test_failing_listener_does_not_block_others(caplog):
    cache = HabitCache()
    seen = []

    def broken(_habits):
        raise RuntimeError("boom")

    cache.subscribe(broken)
    cache.subscribe(seen.append)
    cache.upsert(make_habit("A"), owner_id=OWNER)
    assert len(seen) == 1
    assert "listener" in caplog.text


def test_apply_and_remove_completion():
    cache = HabitCache()
    habit = make_habit("A")
    cache.upsert(habit, owner_id=OWNER)
    late = Completion(habit_id=habit.id, completed_at=day(2))
    early = Completion(habit_id=habit.id, completed_at=day(1))
    cache.apply_completion(late)
    cache.apply_completion(early)

    cached = cache.get(habit.id)
    assert [c.id for c in cached.completions] == [early.id, late.id]
    assert cached.streak_count == 2
    assert cache.find_completion(late.id) == habit.id

    cache.remove_completion(late.id)
    assert [c.id for c in cache.get(habit.id).completions] == [early.id]


def test_update_fields_keeps_completions():
    cache = HabitCache()
    habit = make_habit("A")
    cache.upsert(habit, owner_id=OWNER)
    cache.apply_completion(Completion(habit_id=habit.id, completed_at=day(1)))

    renamed = habit.model_copy(update={"title": "Renamed", "completions": []})
    cache.update_fields(renamed)

    cached = cache.get(habit.id)
    assert cached.title == "Renamed"
    assert len(cached.completions) == 1


def test_checkpoint_restore_round_trip():
    cache = HabitCache()
    habits = [make_habit(t) for t in "ABC"]
    cache.replace_all(habits, owner_id=OWNER, loaded_at=day(1))
    checkpoint = cache.checkpoint(habits[1].id)

    cache.remove(habits[1].id)
    assert [h.title for h in cache.snapshot()] == ["A", "C"]
    cache.restore(checkpoint)
    assert [h.title for h in cache.snapshot()] == ["A", "B", "C"]


def test_restore_of_absent_habit_removes_it():
    cache = HabitCache()
    checkpoint = cache.checkpoint("new")
    cache.upsert(make_habit("New", id="new"), owner_id=OWNER)
    cache.restore(checkpoint)
    assert "new" not in cache


def test_clear_resets_owner_and_state():
    cache = HabitCache()
    cache.replace_all([make_habit("A")], owner_id=OWNER, loaded_at=day(1))
    cache.set_error("oops")
    cache.clear()
    assert len(cache) == 0
    assert cache.owner_id is None
    assert cache.error is None
    assert cache.tracks("anyone")
