"""Tests for the Flask API and the REST repository that consumes it."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token

from habitsync.api import create_app
from habitsync.errors import NotFoundError, UnauthenticatedError, ValidationError
from habitsync.infra.repositories import RestApiHabitRepository
from habitsync.models import Completion, Frequency, Habit
from habitsync.services.streaks import StreakMetrics

from conftest import OTHER_OWNER, OWNER, FlaskTransport, day


@pytest.fixture
def api_app(config, sql_repo):
    app = create_app(config, repository=sql_repo)
    app.config["TESTING"] = True
    return app


def token_for(app, user_id: str) -> str:
    with app.app_context():
        return create_access_token(identity=user_id)


@pytest.fixture
def client(api_app):
    return api_app.test_client()


@pytest.fixture
def auth_headers(api_app):
    return {"Authorization": f"Bearer {token_for(api_app, OWNER)}"}


@pytest.fixture
def rest_repo(api_app):
    return RestApiHabitRepository(
        "http://habitsync.test", token=token_for(api_app, OWNER), session=FlaskTransport(api_app)
    )


class TestRoutes:
    def test_requires_token(self, client):
        response = client.get("/api/habits")
        assert response.status_code == 401

    @pytest.mark.parametrize("token", ["not-a-jwt", "a.b.c"])
    def test_malformed_token_is_unauthorized(self, client, token):
        response = client.get("/api/habits", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.get_json()["error"].startswith("Invalid token")

    def test_expired_token_is_unauthorized(self, api_app, client):
        with api_app.app_context():
            token = create_access_token(identity=OWNER, expires_delta=timedelta(seconds=-30))
        response = client.get("/api/habits", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.get_json() == {"error": "Token has expired"}

    def test_create_and_list(self, client, auth_headers):
        response = client.post(
            "/api/habits",
            json={"title": "Drink Water", "frequency": "daily"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        body = response.get_json()
        assert body["userId"] == OWNER
        assert body["frequency"] == "DAILY"
        assert body["streakCount"] == 0

        listed = client.get("/api/habits", headers=auth_headers).get_json()
        assert [h["id"] for h in listed] == [body["id"]]
        assert listed[0]["completions"] == []

    def test_empty_title_is_bad_request(self, client, auth_headers):
        response = client.post("/api/habits", json={"title": "  "}, headers=auth_headers)
        assert response.status_code == 400
        assert response.get_json()["error"] == "Title is required"

    def test_non_object_body_is_bad_request(self, client, auth_headers):
        response = client.post("/api/habits", json=["title"], headers=auth_headers)
        assert response.status_code == 400

    def test_other_users_habit_is_not_found(self, api_app, client, auth_headers):
        created = client.post("/api/habits", json={"title": "Mine"}, headers=auth_headers).get_json()
        other = {"Authorization": f"Bearer {token_for(api_app, OTHER_OWNER)}"}
        response = client.get(f"/api/habits/{created['id']}", headers=other)
        assert response.status_code == 404
        assert "not found" in response.get_json()["error"]

    def test_completions_by_date(self, client, auth_headers):
        habit = client.post("/api/habits", json={"title": "Walk"}, headers=auth_headers).get_json()
        for n in (1, 2):
            response = client.post(
                "/api/completions",
                json={"habitId": habit["id"], "completedAt": day(n).isoformat()},
                headers=auth_headers,
            )
            assert response.status_code == 201

        on_day_two = client.get(
            "/api/completions", query_string={"date": day(2).date().isoformat()}, headers=auth_headers
        ).get_json()
        assert len(on_day_two) == 1
        everything = client.get(
            "/api/completions", query_string={"all": "true"}, headers=auth_headers
        ).get_json()
        assert len(everything) == 2

    def test_bad_date_is_bad_request(self, client, auth_headers):
        response = client.get(
            "/api/completions", query_string={"date": "yesterday"}, headers=auth_headers
        )
        assert response.status_code == 400

    def test_completion_requires_habit_id(self, client, auth_headers):
        response = client.post("/api/completions", json={}, headers=auth_headers)
        assert response.status_code == 400


class TestRestRepository:
    def test_round_trip(self, rest_repo):
        habit = rest_repo.create_habit(Habit(owner_id=OWNER, title="Read", frequency=Frequency.WEEKLY))
        completion = rest_repo.record_completion(
            Completion(habit_id=habit.id, completed_at=day(2), notes="chapter 3"), owner_id=OWNER
        )

        habits = rest_repo.list_habits(OWNER, with_completions=True)
        assert [h.id for h in habits] == [habit.id]
        assert habits[0].frequency is Frequency.WEEKLY
        assert habits[0].streak_count == 1
        assert [c.id for c in habits[0].completions] == [completion.id]
        assert habits[0].completions[0].notes == "chapter 3"

        renamed = rest_repo.update_habit(habit.model_copy(update={"title": "Read more"}), owner_id=OWNER)
        assert renamed.title == "Read more"

        removed = rest_repo.delete_completion(completion.id, owner_id=OWNER)
        assert removed.id == completion.id
        assert rest_repo.list_completions(habit.id, owner_id=OWNER) == []

        rest_repo.delete_habit(habit.id, owner_id=OWNER)
        with pytest.raises(NotFoundError):
            rest_repo.get_habit(habit.id, owner_id=OWNER)

    def test_range_query(self, rest_repo):
        habit = rest_repo.create_habit(Habit(owner_id=OWNER, title="Walk"))
        for n in (1, 2, 3):
            rest_repo.record_completion(Completion(habit_id=habit.id, completed_at=day(n)), owner_id=OWNER)
        found = rest_repo.list_completions_between(OWNER, day(2, hour=0), day(3, hour=0))
        assert [c.completed_at for c in found] == [day(2)]

    def test_errors_are_translated(self, api_app):
        anonymous = RestApiHabitRepository("http://habitsync.test", session=FlaskTransport(api_app))
        with pytest.raises(UnauthenticatedError):
            anonymous.list_habits(OWNER)

        forged = RestApiHabitRepository(
            "http://habitsync.test", token="not-a-jwt", session=FlaskTransport(api_app)
        )
        with pytest.raises(UnauthenticatedError):
            forged.list_habits(OWNER)

        rest_repo = RestApiHabitRepository(
            "http://habitsync.test", token=token_for(api_app, OWNER), session=FlaskTransport(api_app)
        )
        with pytest.raises(ValidationError):
            rest_repo.create_habit(Habit(owner_id=OWNER, title="x").model_copy(update={"title": " "}))

    def test_facade_over_rest(self, rest_repo, make_facade):
        facade = make_facade(rest_repo)

        async def scenario():
            habit = await facade.create_habit(OWNER, {"title": "Drink Water"})
            for n in (1, 2, 3):
                await facade.complete_habit(habit.id, OWNER, completed_at=day(n))
            return await facade.list_habits(OWNER)

        habits = asyncio.run(scenario())
        assert len(habits) == 1
        assert facade.get_streak(habits[0]) == StreakMetrics(streak=3, best_streak=3, total=3)
