"""Tests for the funnel client-provisioning webhook."""

from datetime import timedelta
from uuid import UUID

import pytest
from pydantic import SecretStr
from sqlalchemy import event, select
from sqlalchemy.exc import OperationalError

from clientportal.config import get_settings
from clientportal.models import Client, Notification, Project
from conftest import BASE_TIME

URL = "/api/v1/webhook/pabbly"


def _payload(subaccount_id: str = "sub_123", **client) -> dict:
    return {
        "client": client or {"name": "Initech", "email": "bill@initech.test", "phone": "5550199"},
        "subaccount": {"id": subaccount_id},
    }


@pytest.mark.api
class TestPabblyProvisioning:
    async def test_creates_client_with_default_project(self, api_client, pm, fetch):
        response = await api_client.post(URL, json=_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Client created successfully"

        clients = await fetch(select(Client))
        assert [str(c.id) for c in clients] == [body["clientId"]]
        assert clients[0].name == "Initech"
        assert clients[0].subaccount_id == "sub_123"
        assert clients[0].assigned_pm_id == pm.id

        projects = await fetch(select(Project))
        assert [str(p.id) for p in projects] == [body["projectId"]]
        assert projects[0].title == "Initial Setup"
        assert projects[0].status == "planning"
        assert projects[0].description == "Initial project setup for new client"

    async def test_notifies_assigned_pm(self, api_client, pm, fetch):
        response = await api_client.post(URL, json=_payload())

        notifications = await fetch(select(Notification))
        assert len(notifications) == 1
        note = notifications[0]
        assert note.user_id == pm.id
        assert note.type == "task_assigned"
        assert note.title == "New Client Assigned"
        assert note.content == "You have been assigned as the Project Manager for Initech."
        assert note.related_id == UUID(response.json()["clientId"])

    async def test_redelivery_is_idempotent(self, api_client, pm, fetch):
        first = await api_client.post(URL, json=_payload())
        second = await api_client.post(URL, json=_payload())

        assert second.status_code == 200
        assert second.json() == {
            "success": True,
            "message": "Client already exists",
            "clientId": first.json()["clientId"],
        }
        assert len(await fetch(select(Client))) == 1
        assert len(await fetch(select(Project))) == 1
        assert len(await fetch(select(Notification))) == 1

    async def test_missing_client_fields_use_defaults(self, api_client, fetch):
        response = await api_client.post(URL, json={"client": {}, "subaccount": {"id": 42}})

        assert response.status_code == 200
        clients = await fetch(select(Client))
        assert clients[0].name == "New Client"
        assert clients[0].subaccount_id == "42"

    async def test_empty_roster_leaves_client_unassigned(self, api_client, fetch):
        response = await api_client.post(URL, json=_payload())

        assert response.status_code == 200
        clients = await fetch(select(Client))
        assert clients[0].assigned_pm_id is None
        assert await fetch(select(Notification)) == []


@pytest.mark.api
class TestPabblyRoundRobin:
    async def _team(self, make_user):
        return [
            await make_user(role="team_member", name=name, created_at=BASE_TIME + timedelta(days=i))
            for i, name in enumerate(["A", "B", "C"])
        ]

    async def test_after_last_member_wraps_to_first(self, api_client, make_user, make_client, fetch):
        a, b, c = await self._team(make_user)
        await make_client(name="Previous", assigned_pm_id=c.id)

        response = await api_client.post(URL, json=_payload())

        new = await fetch(select(Client).where(Client.id == UUID(response.json()["clientId"])))
        assert new[0].assigned_pm_id == a.id

    async def test_previous_pm_off_roster_starts_at_first(self, api_client, make_user, make_client, fetch):
        a, b, c = await self._team(make_user)
        departed = await make_user(role="client", name="Z")
        await make_client(name="Previous", assigned_pm_id=departed.id)

        response = await api_client.post(URL, json=_payload())

        new = await fetch(select(Client).where(Client.id == UUID(response.json()["clientId"])))
        assert new[0].assigned_pm_id == a.id

    async def test_successive_clients_rotate(self, api_client, make_user, fetch):
        a, b, c = await self._team(make_user)

        assigned = []
        for i in range(4):
            response = await api_client.post(URL, json=_payload(subaccount_id=f"sub_{i}"))
            rows = await fetch(select(Client).where(Client.id == UUID(response.json()["clientId"])))
            assigned.append(rows[0].assigned_pm_id)

        assert assigned == [a.id, b.id, c.id, a.id]


@pytest.mark.api
class TestPabblyErrors:
    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"client": {"name": "X"}},
            {"subaccount": {"id": "sub_1"}},
            {"client": {"name": "X"}, "subaccount": {}},
            {"client": {"name": "X"}, "subaccount": {"id": ""}},
            {"client": "X", "subaccount": {"id": "sub_1"}},
            [1, 2, 3],
        ],
    )
    async def test_invalid_payload_is_400_without_writes(self, api_client, body, fetch):
        response = await api_client.post(URL, json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid webhook payload"}
        assert await fetch(select(Client)) == []

    async def test_malformed_json_is_400(self, api_client):
        response = await api_client.post(
            URL, content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid webhook payload"}

    async def test_secret_required_when_configured(self, api_client, monkeypatch, fetch):
        monkeypatch.setattr(get_settings(), "webhook_secret", SecretStr("s3cret"))

        rejected = await api_client.post(URL, json=_payload())
        accepted = await api_client.post(
            URL, json=_payload(), headers={"X-Webhook-Secret": "s3cret"}
        )

        assert rejected.status_code == 401
        assert rejected.json() == {"error": "Invalid webhook secret"}
        assert accepted.status_code == 200
        assert len(await fetch(select(Client))) == 1


@pytest.fixture
def failing_notification_insert():
    """Make every Notification insert fail at flush time."""

    def _fail(mapper, connection, target):
        raise OperationalError("INSERT INTO notifications", {}, Exception("disk I/O error"))

    event.listen(Notification, "before_insert", _fail)
    yield
    event.remove(Notification, "before_insert", _fail)


@pytest.mark.api
class TestPabblyBestEffortWrites:
    async def test_default_project_failure_keeps_client(self, api_client, pm, monkeypatch, fetch):
        # NOT NULL violation on projects.title
        monkeypatch.setattr(get_settings(), "default_project_title", None)

        response = await api_client.post(URL, json=_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["projectId"] is None
        assert [str(c.id) for c in await fetch(select(Client))] == [body["clientId"]]
        assert await fetch(select(Project)) == []
        assert len(await fetch(select(Notification))) == 1

    async def test_notification_failure_keeps_client_and_project(
        self, api_client, pm, failing_notification_insert, fetch
    ):
        response = await api_client.post(URL, json=_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["projectId"] is not None
        assert [str(c.id) for c in await fetch(select(Client))] == [body["clientId"]]
        assert [str(p.id) for p in await fetch(select(Project))] == [body["projectId"]]
        assert await fetch(select(Notification)) == []
