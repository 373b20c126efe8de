"""Tests for project creation, listing, lifecycle, members and project roles."""

from pms.models.models import ProjectProgressReport, ProjectRole, ProjectTask
from pms.utils import object_id
from tests.fixtures.project_fixtures import DAY_MS, PROJECT_START


def status_head(client, project_id):
    return client.get(f"/projects/{project_id}").json()["status"][0]["kind"]


def start_project(client, headers, project_id, task_id, value=10):
    response = client.post(
        f"/projects/{project_id}/reports",
        json={"actual": [{"task_id": task_id, "value": value}]},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["_id"]


class TestCreateProject:
    """Project creation."""

    def test_invalid_period(self, client, headers, customer_id):
        response = client.post(
            "/projects",
            json={"customer_id": customer_id, "name": "P", "code": "P01", "period": {"start": 1000, "end": 1000}},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "INVALID_PERIOD"

    def test_unknown_customer(self, client, headers):
        response = client.post(
            "/projects",
            json={"customer_id": object_id(), "name": "P", "code": "P01", "period": {"start": 0, "end": 1000}},
            headers=headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "CUSTOMER_NOT_FOUND"

    def test_requires_authentication(self, client, customer_id):
        response = client.post(
            "/projects",
            json={"customer_id": customer_id, "name": "P", "code": "P01", "period": {"start": 0, "end": 1000}},
        )

        assert response.status_code == 401

    def test_created_pending_with_owner_member(self, client, owner, project_id):
        detail = client.get(f"/projects/{project_id}").json()

        assert detail["status"][0]["kind"] == "pending"
        assert len(detail["status"]) == 1
        assert detail["customer"]["name"] == "Acme"
        assert detail["member"][0]["_id"] == owner["_id"]
        assert detail["member"][0]["kind"] == "indirect"
        assert detail["member"][0]["role"][0]["permission"] == ["owner"]
        assert detail["progress"] == {"plan": 0.0, "actual": 0.0}


class TestListProjects:
    """Listing with filters."""

    def test_empty_is_not_found(self, client):
        response = client.get("/projects")

        assert response.status_code == 404
        assert response.json()["detail"] == "PROJECT_NOT_FOUND"

    def test_filters(self, client, project_id):
        assert [p["_id"] for p in client.get("/projects", params={"text": "bri"}).json()] == [project_id]
        assert client.get("/projects", params={"text": "tunnel"}).status_code == 404
        assert client.get("/projects", params={"status": "pending"}).json()[0]["progress"]["actual"] == 0.0
        assert client.get("/projects", params={"status": "running"}).status_code == 404


class TestLifecycle:
    """Status transitions driven by commands and incidents."""

    def test_status_command_needs_breakdown_or_pause(self, client, headers, project_id):
        response = client.put(f"/projects/{project_id}/status", params={"status": "running"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "INVALID_STATUS"

    def test_breakdown_coupling(self, client, headers, project_id, base_task_ids):
        start_project(client, headers, project_id, base_task_ids[0])
        assert status_head(client, project_id) == "running"

        response = client.post(
            f"/projects/{project_id}/incidents",
            params={"breakdown": "true"},
            json={"member_id": [], "kind": "first_aid"},
            headers=headers,
        )
        assert response.status_code == 201
        assert status_head(client, project_id) == "breakdown"

        response = client.put(f"/projects/{project_id}/status", params={"status": "running"}, headers=headers)
        assert response.status_code == 200
        assert status_head(client, project_id) == "running"

        response = client.post(
            f"/projects/{project_id}/incidents",
            params={"breakdown": "false"},
            json={"member_id": [], "kind": "near_miss"},
            headers=headers,
        )
        assert response.status_code == 201
        assert status_head(client, project_id) == "running"
        assert len(client.get(f"/projects/{project_id}/incidents", headers=headers).json()) == 2

    def test_start_requires_base_sum(self, client, headers, project_id, area_id):
        task_id = client.post(
            f"/projects/{project_id}/tasks",
            json={"area_id": area_id, "name": "Half", "value": 50},
            headers=headers,
        ).json()["_id"]

        response = client.post(
            f"/projects/{project_id}/reports",
            json={"actual": [{"task_id": task_id, "value": 10}]},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_VALUE_SUM_MUST_BE_100"
        assert status_head(client, project_id) == "pending"

    def test_breakdown_before_start_runs_start_checks(self, client, headers, project_id, area_id):
        client.post(
            f"/projects/{project_id}/tasks",
            json={"area_id": area_id, "name": "Partial", "value": 30},
            headers=headers,
        )
        response = client.post(
            f"/projects/{project_id}/incidents",
            params={"breakdown": "true"},
            json={"member_id": [], "kind": "property_damage"},
            headers=headers,
        )
        assert response.status_code == 201

        response = client.put(f"/projects/{project_id}/status", params={"status": "running"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_VALUE_SUM_MUST_BE_100"
        assert status_head(client, project_id) == "breakdown"

    def test_breakdown_before_start_clears_with_valid_weights(self, client, headers, project_id, base_task_ids):
        client.post(
            f"/projects/{project_id}/incidents",
            params={"breakdown": "true"},
            json={"member_id": [], "kind": "near_miss"},
            headers=headers,
        )

        response = client.put(f"/projects/{project_id}/status", params={"status": "running"}, headers=headers)

        assert response.status_code == 200
        assert status_head(client, project_id) == "running"

    def test_delete_cascades(self, client, headers, project_id, base_task_ids, db_session):
        start_project(client, headers, project_id, base_task_ids[0])

        response = client.delete(f"/projects/{project_id}", headers=headers)

        assert response.status_code == 200
        assert client.get(f"/projects/{project_id}").status_code == 404
        for model in (ProjectTask, ProjectRole, ProjectProgressReport):
            assert db_session.query(model).filter(model.project_id == project_id).count() == 0

    def test_progress_invalid_id(self, client):
        response = client.get("/projects/xyz/progress")

        assert response.status_code == 400
        assert response.json()["detail"] == "INVALID_ID"

    def test_progress_unknown_project(self, client):
        response = client.get(f"/projects/{object_id()}/progress")

        assert response.status_code == 404
        assert response.json()["detail"] == "PROJECT_NOT_FOUND"

    def test_progress_curve(self, client, headers, project_id, area_id):
        task_id = client.post(
            f"/projects/{project_id}/tasks",
            json={"area_id": area_id, "name": "All", "value": 100},
            headers=headers,
        ).json()["_id"]
        client.patch(
            f"/projects/{project_id}/tasks/{task_id}/period",
            json={"start": PROJECT_START, "end": PROJECT_START + DAY_MS},
            headers=headers,
        )

        points = client.get(f"/projects/{project_id}/progress").json()

        assert points[0] == {"x": PROJECT_START - DAY_MS, "y": [0.0, 0.0]}
        assert points[1]["y"] == [50.0, 0.0]
        assert points[2]["y"] == [100.0, 0.0]


class TestMembersAndRoles:
    """Project roles and membership."""

    def test_owner_role_protected(self, client, headers, project_id):
        owner_role = client.get(f"/projects/{project_id}/roles").json()[0]

        response = client.delete(f"/projects/{project_id}/roles/{owner_role['_id']}", headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_ROLE_OWNER_IS_PROTECTED"

    def test_role_cannot_grant_owner(self, client, headers, project_id):
        response = client.post(
            f"/projects/{project_id}/roles", json={"name": "Boss", "permission": ["owner"]}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "ROLE_MUST_HAVE_VALID_PERMISSION"

    def test_project_must_keep_an_owner(self, client, headers, owner, project_id):
        role_id = client.post(
            f"/projects/{project_id}/roles", json={"name": "Crew", "permission": ["create_report"]}, headers=headers
        ).json()["_id"]

        response = client.patch(
            f"/projects/{project_id}/members",
            json=[{"_id": owner["_id"], "role_id": [role_id], "kind": "direct"}],
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_MUST_HAVE_OWNER"

        response = client.delete(f"/projects/{project_id}/members/{owner['_id']}", headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_MUST_HAVE_OWNER"

    def test_member_role_must_belong_to_project(self, client, headers, owner, project_id):
        response = client.patch(
            f"/projects/{project_id}/members",
            json=[{"_id": owner["_id"], "role_id": [object_id()], "kind": "direct"}],
            headers=headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "PROJECT_ROLE_NOT_FOUND"

    def test_deleting_role_scrubs_members(self, client, headers, owner, project_id):
        roles = client.get(f"/projects/{project_id}/roles").json()
        crew_id = client.post(
            f"/projects/{project_id}/roles", json={"name": "Crew", "permission": ["get_task"]}, headers=headers
        ).json()["_id"]
        client.patch(
            f"/projects/{project_id}/members",
            json=[{"_id": owner["_id"], "role_id": [roles[0]["_id"], crew_id], "kind": "indirect"}],
            headers=headers,
        )

        response = client.delete(f"/projects/{project_id}/roles/{crew_id}", headers=headers)

        assert response.status_code == 200
        member = client.get(f"/projects/{project_id}/members").json()[0]
        assert [r["_id"] for r in member["role"]] == [roles[0]["_id"]]

    def test_non_member_is_unauthorized(self, client, headers, project_id):
        role_id = client.post("/roles", json={"name": "PM", "permission": ["create_project"]}, headers=headers).json()["_id"]
        client.post(
            "/users",
            json={"name": "pm", "email": "pm@example.com", "password": "password123", "role_id": [role_id]},
            headers=headers,
        )
        login = client.post("/users/login", json={"email": "pm@example.com", "password": "password123"}).json()

        response = client.delete(f"/projects/{project_id}", headers={"Authorization": f"Bearer {login['atk']}"})

        assert response.status_code == 401
