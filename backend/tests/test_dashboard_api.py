"""Tests for the dashboard, notifications, profile and health endpoints."""

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from clientportal.db.session import get_db_session
from clientportal.main import app
from clientportal.models import Notification
from conftest import BASE_TIME


@pytest.fixture
def add_notification(session_factory):
    async def _add_notification(user, title="Hello", minutes=0, is_read=False):
        notification = Notification(
            user_id=user.id,
            title=title,
            content=f"{title} content",
            type="message",
            is_read=is_read,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )
        async with session_factory() as session:
            session.add(notification)
            await session.commit()
        return notification

    return _add_notification


@pytest.mark.api
class TestDashboard:
    async def test_next_task_prefers_earliest_due_date(
        self, api_client, acme, client_user, make_project, make_task, auth_headers
    ):
        project = await make_project(acme, title="Website")
        await make_task(project, title="undated", status="to_do", position=0)
        await make_task(project, title="later", status="to_do", position=1, due_date=date(2024, 3, 1))
        await make_task(project, title="sooner", status="to_do", position=2, due_date=date(2024, 2, 1))
        await make_task(project, title="done", status="complete", position=0, due_date=date(2024, 1, 1))

        response = await api_client.get("/api/v1/dashboard/", headers=auth_headers(client_user))

        assert response.status_code == 200
        body = response.json()
        assert [p["title"] for p in body["projects"]] == ["Website"]
        assert body["next_task"]["title"] == "sooner"
        assert body["next_task"]["project_title"] == "Website"

    async def test_empty_dashboard(self, api_client, make_user, auth_headers):
        newcomer = await make_user(role="client")

        response = await api_client.get("/api/v1/dashboard/", headers=auth_headers(newcomer))

        assert response.json() == {"projects": [], "next_task": None, "notifications": []}

    async def test_pending_session_is_rejected(self, api_client, client_user, auth_headers):
        response = await api_client.get(
            "/api/v1/dashboard/", headers=auth_headers(client_user, session_status="pending")
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Session pending"

    async def test_missing_token_is_rejected(self, api_client):
        response = await api_client.get("/api/v1/dashboard/")

        assert response.status_code == 401


@pytest.mark.api
class TestNotifications:
    async def test_list_newest_first(self, api_client, client_user, add_notification, auth_headers):
        await add_notification(client_user, "first", minutes=1)
        await add_notification(client_user, "second", minutes=2, is_read=True)

        everything = await api_client.get("/api/v1/notifications/", headers=auth_headers(client_user))
        unread = await api_client.get(
            "/api/v1/notifications/", params={"unread_only": True}, headers=auth_headers(client_user)
        )

        assert [n["title"] for n in everything.json()] == ["second", "first"]
        assert [n["title"] for n in unread.json()] == ["first"]

    async def test_mark_read_only_own(self, api_client, client_user, pm, add_notification, auth_headers):
        notification = await add_notification(pm, "for pm")

        denied = await api_client.post(
            f"/api/v1/notifications/{notification.id}/read", headers=auth_headers(client_user)
        )
        allowed = await api_client.post(
            f"/api/v1/notifications/{notification.id}/read", headers=auth_headers(pm)
        )

        assert denied.status_code == 404
        assert allowed.status_code == 200
        assert allowed.json()["is_read"] is True

    async def test_read_all(self, api_client, client_user, pm, add_notification, auth_headers, fetch):
        await add_notification(client_user, "a")
        await add_notification(client_user, "b")
        await add_notification(pm, "c")

        response = await api_client.post("/api/v1/notifications/read-all", headers=auth_headers(client_user))

        assert response.json() == {"updated": 2}
        unread = await fetch(select(Notification).where(Notification.is_read.is_(False)))
        assert [n.title for n in unread] == ["c"]


@pytest.mark.api
class TestProfileAndHealth:
    async def test_me_reports_linked_client(self, api_client, acme, client_user, auth_headers):
        response = await api_client.get("/api/v1/users/me", headers=auth_headers(client_user))

        assert response.status_code == 200
        assert response.json()["client_id"] == str(acme.id)

    async def test_update_name(self, api_client, client_user, auth_headers):
        response = await api_client.patch(
            "/api/v1/users/me", json={"name": "Carla C."}, headers=auth_headers(client_user)
        )

        assert response.json()["name"] == "Carla C."

    async def test_health(self, api_client):
        response = await api_client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_readiness_checks_database(self, api_client):
        response = await api_client.get("/api/v1/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "healthy", "webhooks": "open"}

    async def test_readiness_reports_unreachable_database(self, api_client):
        class UnreachableSession:
            async def execute(self, statement):
                raise ConnectionRefusedError("connection refused")

        async def unreachable_db():
            yield UnreachableSession()

        app.dependency_overrides[get_db_session] = unreachable_db

        response = await api_client.get("/api/v1/health/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["checks"]["database"] == "unhealthy: ConnectionRefusedError"
