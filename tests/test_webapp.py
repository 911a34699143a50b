"""HTTP API behaviour through FastAPI's TestClient."""

from fastapi.testclient import TestClient

from conftest import T0
from flow_timer.webapp import create_app

OWNER = {"X-Owner-Id": "u1"}


class TestTimerRoutes:
    def test_full_lifecycle(self, api, clock):
        started = api.post("/api/timer/start", json={"description": "focus"}, headers=OWNER)
        assert started.status_code == 201
        assert started.json()["startTime"] == T0.isoformat()

        clock.advance(300)
        paused = api.post("/api/timer/pause", json={"reason": "lunch"}, headers=OWNER)
        assert paused.json() == {"pausedAt": clock.now().isoformat(), "reason": "lunch"}

        clock.advance(600)
        resumed = api.post("/api/timer/resume", headers=OWNER)
        assert resumed.json() == {"pausedDuration": 600, "totalPausedDuration": 600}

        clock.advance(300)
        stopped = api.post("/api/timer/stop", headers=OWNER)
        body = stopped.json()
        assert stopped.status_code == 200
        assert body["duration"] == 600
        assert body["totalPausedDuration"] == 600
        assert body["description"] == "focus"
        assert body["summary"]["durationMinutes"] == 10

    def test_status_idle(self, api, clock):
        body = api.get("/api/timer/status", headers=OWNER).json()
        assert body == {"hasActiveTimer": False, "serverTime": clock.now().isoformat(), "timer": None}

    def test_status_running(self, api, clock):
        api.post("/api/timer/start", json={"isBreak": True, "taskId": "t9"}, headers=OWNER)
        clock.advance(42)
        timer = api.get("/api/timer/status", headers=OWNER).json()["timer"]
        assert timer["elapsedSeconds"] == 42
        assert timer["isBreak"] is True
        assert timer["isPaused"] is False
        assert timer["taskTitle"] == "Unknown task"

    def test_start_without_body(self, api):
        assert api.post("/api/timer/start", headers=OWNER).status_code == 201

    def test_conflict(self, api):
        api.post("/api/timer/start", headers=OWNER)
        response = api.post("/api/timer/start", headers=OWNER)
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_invalid_state(self, api):
        api.post("/api/timer/start", headers=OWNER)
        response = api.post("/api/timer/resume", headers=OWNER)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"

    def test_not_found(self, api):
        response = api.post("/api/timer/stop", headers=OWNER)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_owner_header_required(self, api):
        assert api.get("/api/timer/status").status_code == 400

    def test_unknown_fields_rejected(self, api):
        response = api.post("/api/timer/start", json={"bogus": 1}, headers=OWNER)
        assert response.status_code == 422

    def test_storage_failure(self, tmp_path, clock):
        broken = TestClient(create_app(db_path=tmp_path, clock=clock))
        response = broken.get("/api/timer/status", headers=OWNER)
        assert response.status_code == 503
        assert response.json()["error"] == "storage_error"


class TestReadRoutes:
    def _record(self, api, clock, seconds):
        api.post("/api/timer/start", headers=OWNER)
        clock.advance(seconds)
        api.post("/api/timer/stop", headers=OWNER)

    def test_stats(self, api, clock):
        self._record(api, clock, 3600)
        body = api.get(
            "/api/stats",
            params={"start_date": "2024-03-04", "end_date": "2024-03-10"},
            headers=OWNER,
        ).json()
        assert body["totalHours"] == 1.0
        assert body["efficiency"] == 100
        assert len(body["weeklyTrend"]) == 7
        assert body["weeklyTrend"][0] == {
            "date": "2024-03-04",
            "day": "Mon",
            "weekdayIndex": 0,
            "hours": 1.0,
        }
        assert body["categoryBreakdown"][0]["categoryName"] == "Work"
        assert body["stale"] is False

    def test_stats_empty_range(self, api):
        body = api.get(
            "/api/stats",
            params={"start_date": "2024-03-04", "end_date": "2024-03-06"},
            headers=OWNER,
        ).json()
        assert body["efficiency"] == 0
        assert [bucket["hours"] for bucket in body["weeklyTrend"]] == [0.0, 0.0, 0.0]

    def test_stats_bad_date(self, api):
        response = api.get("/api/stats", params={"start_date": "March"}, headers=OWNER)
        assert response.status_code == 400

    def test_stats_reversed_range(self, api):
        response = api.get(
            "/api/stats",
            params={"start_date": "2024-03-05", "end_date": "2024-03-04"},
            headers=OWNER,
        )
        assert response.status_code == 400

    def test_activities(self, api, clock):
        self._record(api, clock, 60)
        body = api.get("/api/activities", headers=OWNER).json()
        assert [event["action"] for event in body["activities"]] == ["started", "stopped"]
        assert len(body["sessions"]) == 1
        session = body["sessions"][0]
        assert session["timeEntry"]["duration"] == 60
        assert [event["action"] for event in session["activities"]] == ["started", "stopped"]
        assert body["dateRange"] == {"startDate": "2024-03-04", "endDate": "2024-03-04"}

    def test_activities_start_date_only(self, api, clock):
        clock.advance(days=2)
        self._record(api, clock, 60)
        body = api.get(
            "/api/activities", params={"start_date": "2024-03-04"}, headers=OWNER
        ).json()
        assert body["dateRange"] == {"startDate": "2024-03-04", "endDate": "2024-03-06"}
        assert len(body["activities"]) == 2

    def test_offset_timestamp_uses_utc_day(self, api, clock):
        # 23:00 at -05:00 is 04:00 UTC on the next day.
        self._record(api, clock, 60)
        body = api.get(
            "/api/activities",
            params={"start_date": "2024-03-03T23:00:00-05:00", "end_date": "2024-03-04"},
            headers=OWNER,
        ).json()
        assert body["dateRange"]["startDate"] == "2024-03-04"
        assert len(body["activities"]) == 2

    def test_stats_week_and_minutes(self, api, clock):
        self._record(api, clock, 5400)
        body = api.get(
            "/api/stats",
            params={"start_date": "2024-03-01", "end_date": "2024-03-04"},
            headers=OWNER,
        ).json()
        assert body["weekHours"] == 1.5
        assert body["totalMinutes"] == 90

    def test_activities_limit_validated(self, api):
        assert api.get("/api/activities", params={"limit": 0}, headers=OWNER).status_code == 422


class TestCatalogRoutes:
    def test_categories(self, api):
        created = api.post("/api/categories", json={"name": "Deep work", "isBillable": True})
        assert created.status_code == 201
        listed = api.get("/api/categories").json()["categories"]
        assert [(c["name"], c["isBillable"]) for c in listed] == [("Deep work", True)]

    def test_duplicate_category(self, api):
        api.post("/api/categories", json={"name": "Admin"})
        assert api.post("/api/categories", json={"name": "Admin"}).status_code == 400

    def test_tasks_upsert(self, api):
        api.post("/api/tasks", json={"id": "t1", "title": "Draft"})
        api.post("/api/tasks", json={"id": "t1", "title": "Final"})
        assert api.get("/api/tasks").json()["tasks"] == [{"id": "t1", "title": "Final"}]

    def test_task_title_shown_in_status(self, api):
        api.post("/api/tasks", json={"id": "t1", "title": "Draft"})
        api.post("/api/timer/start", json={"taskId": "t1"}, headers=OWNER)
        timer = api.get("/api/timer/status", headers=OWNER).json()["timer"]
        assert timer["taskTitle"] == "Draft"

    def test_start_and_stop_carry_display_names(self, api):
        api.post("/api/tasks", json={"id": "t1", "title": "Write report"})
        category = api.post("/api/categories", json={"name": "Writing"}).json()["category"]
        started = api.post(
            "/api/timer/start",
            json={"taskId": "t1", "categoryId": category["id"]},
            headers=OWNER,
        ).json()
        assert started["taskTitle"] == "Write report"
        assert started["categoryName"] == "Writing"

        stopped = api.post("/api/timer/stop", headers=OWNER).json()
        assert stopped["taskTitle"] == "Write report"
        assert stopped["categoryName"] == "Writing"

    def test_start_with_unknown_task_uses_placeholder(self, api):
        started = api.post("/api/timer/start", json={"taskId": "nope"}, headers=OWNER).json()
        assert started["taskTitle"] == "Unknown task"
        assert started["categoryName"] is None

    def test_health(self, api, db_path):
        body = api.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["database_path"] == str(db_path)
