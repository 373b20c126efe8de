"""Tests for the task graph: base tasks, subtask batches, status and areas."""

import pytest
from fastapi import HTTPException

from pms.models.models import ProjectTask
from pms.schemas.projects import ProjectTaskRequest
from pms.services import lifecycle, task_service
from pms.utils import object_id
from tests.fixtures.project_fixtures import DAY_MS, PROJECT_START


def subtasks(values):
    return [{"name": f"Sub {i}", "value": v} for i, v in enumerate(values)]


class TestBaseTasks:
    """Base task creation and editing."""

    def test_area_must_exist(self, client, headers, project_id):
        response = client.post(
            f"/projects/{project_id}/tasks",
            json={"area_id": object_id(), "name": "T", "value": 100},
            headers=headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "PROJECT_AREA_NOT_FOUND"

    def test_value_out_of_range(self, client, headers, project_id, area_id):
        response = client.post(
            f"/projects/{project_id}/tasks",
            json={"area_id": area_id, "name": "T", "value": 120},
            headers=headers,
        )

        assert response.status_code == 400

    def test_created_pending(self, client, headers, project_id, base_task_ids):
        task = client.get(f"/projects/{project_id}/tasks/{base_task_ids[0]}", headers=headers).json()

        assert task["status"][0]["kind"] == "pending"
        assert task["value"] == 60
        assert task["area"]["name"] == "Deck"
        assert task["subtask"] == []
        assert task["progress"] == 0.0

    def test_list_by_kind(self, client, headers, project_id, base_task_ids):
        client.post(f"/projects/{project_id}/tasks/{base_task_ids[0]}", json=subtasks([100]), headers=headers)

        base = client.get(f"/projects/{project_id}/tasks", params={"kind": "base"}, headers=headers).json()
        deps = client.get(f"/projects/{project_id}/tasks", params={"kind": "dependency"}, headers=headers).json()

        assert sorted(t["_id"] for t in base) == sorted(base_task_ids)
        assert [t["task_id"] for t in deps] == [base_task_ids[0]]

    def test_invalid_period(self, client, headers, project_id, base_task_ids):
        response = client.patch(
            f"/projects/{project_id}/tasks/{base_task_ids[0]}/period",
            json={"start": PROJECT_START, "end": PROJECT_START},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "INVALID_PERIOD"


class TestSubtaskBatch:
    """Subtask batches must weigh exactly 100 and replace prior subtasks."""

    def test_sum_enforced(self, client, headers, project_id, base_task_ids):
        url = f"/projects/{project_id}/tasks/{base_task_ids[0]}"

        response = client.post(url, json=subtasks([40, 40]), headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_VALUE_SUM_MUST_BE_100"

        response = client.post(url, json=subtasks([60, 40]), headers=headers)
        assert response.status_code == 201
        assert len(response.json()["_id"]) == 2

    def test_no_tolerance(self, client, headers, project_id, base_task_ids):
        response = client.post(
            f"/projects/{project_id}/tasks/{base_task_ids[0]}", json=subtasks([60, 39.999]), headers=headers
        )

        assert response.status_code == 400

    def test_overweight_batch_leaves_nothing_behind(self, client, headers, project_id, base_task_ids):
        url = f"/projects/{project_id}/tasks/{base_task_ids[0]}"

        response = client.post(url, json=subtasks([60, 40.001]), headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_VALUE_SUM_MUST_BE_100"
        children = client.get(
            f"/projects/{project_id}/tasks", params={"task_id": base_task_ids[0]}, headers=headers
        ).json()
        assert children == []

    def test_decimal_thirds_accepted(self, client, headers, project_id, base_task_ids):
        response = client.post(
            f"/projects/{project_id}/tasks/{base_task_ids[0]}", json=subtasks([33.3, 33.3, 33.4]), headers=headers
        )

        assert response.status_code == 201
        assert len(response.json()["_id"]) == 3

    def test_concurrent_batch_conflicts(self, client, session_factory, project_id, base_task_ids):
        first, second = session_factory(), session_factory()
        batch = [ProjectTaskRequest(name="Sub", value=100)]
        try:
            project_a = task_service.get_project(first, project_id)
            project_b = task_service.get_project(second, project_id)

            task_service.create_subtasks(first, project_a, base_task_ids[0], batch)
            with pytest.raises(HTTPException) as exc_info:
                task_service.create_subtasks(second, project_b, base_task_ids[0], batch)
        finally:
            first.close()
            second.close()

        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == "PROJECT_VERSION_CONFLICT"

    def test_replace_all(self, client, headers, project_id, base_task_ids):
        url = f"/projects/{project_id}/tasks/{base_task_ids[0]}"
        client.post(url, json=subtasks([50, 50]), headers=headers)

        response = client.post(url, json=subtasks([100]), headers=headers)

        assert response.status_code == 201
        children = client.get(
            f"/projects/{project_id}/tasks", params={"task_id": base_task_ids[0]}, headers=headers
        ).json()
        assert [c["_id"] for c in children] == response.json()["_id"]

    def test_parent_loses_volume_and_assignees(self, client, headers, owner, project_id, area_id):
        task_id = client.post(
            f"/projects/{project_id}/tasks",
            json={
                "area_id": area_id,
                "name": "Pour",
                "value": 100,
                "user_id": [owner["_id"]],
                "volume": {"value": 12, "unit": "m3"},
            },
            headers=headers,
        ).json()["_id"]

        client.post(f"/projects/{project_id}/tasks/{task_id}", json=subtasks([30, 70]), headers=headers)

        task = client.get(f"/projects/{project_id}/tasks/{task_id}", headers=headers).json()
        assert task["volume"] is None
        assert task["user_id"] == []
        assert sorted(s["value"] for s in task["subtask"]) == [30, 70]

    def test_parent_must_be_base(self, client, headers, project_id, base_task_ids):
        child = client.post(
            f"/projects/{project_id}/tasks/{base_task_ids[0]}", json=subtasks([100]), headers=headers
        ).json()["_id"][0]

        response = client.post(f"/projects/{project_id}/tasks/{child}", json=subtasks([100]), headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_MUST_BE_BASE"

    def test_base_values_must_sum_to_100(self, client, headers, project_id, area_id):
        task_id = client.post(
            f"/projects/{project_id}/tasks", json={"area_id": area_id, "name": "T", "value": 80}, headers=headers
        ).json()["_id"]

        response = client.post(f"/projects/{project_id}/tasks/{task_id}", json=subtasks([100]), headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_VALUE_SUM_MUST_BE_100"

    def test_requires_pending_project(self, client, headers, project_id, base_task_ids):
        client.post(
            f"/projects/{project_id}/reports",
            json={"actual": [{"task_id": base_task_ids[1], "value": 5}]},
            headers=headers,
        )

        response = client.post(
            f"/projects/{project_id}/tasks/{base_task_ids[0]}", json=subtasks([100]), headers=headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_STATUS_MUST_BE_PENDING"


class TestValueSums:
    """Weights are compared exactly after an fsum of the submitted values."""

    @pytest.mark.parametrize(
        "values",
        [[100], [60, 40], [33.3, 33.3, 33.4], [12.5] * 8, [0.1] * 1000],
    )
    def test_accepted(self, values):
        assert lifecycle.sums_to_100(values)

    @pytest.mark.parametrize(
        "values",
        [[], [60, 39.999], [60, 40.001], [33.3, 33.3, 33.3], [100.001]],
    )
    def test_rejected(self, values):
        assert not lifecycle.sums_to_100(values)


class TestSubtaskWeights:
    """Edits and deletes may not leave a parent's subtasks off 100."""

    def create_children(self, client, headers, project_id, parent_id, values):
        response = client.post(f"/projects/{project_id}/tasks/{parent_id}", json=subtasks(values), headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["_id"]

    def test_value_edit_must_keep_sum(self, client, headers, project_id, base_task_ids):
        children = self.create_children(client, headers, project_id, base_task_ids[0], [60, 40])

        response = client.put(
            f"/projects/{project_id}/tasks/{children[0]}", json={"name": "Sub 0", "value": 10}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_VALUE_SUM_MUST_BE_100"
        task = client.get(f"/projects/{project_id}/tasks/{children[0]}", headers=headers).json()
        assert task["value"] == 60

    def test_rename_with_same_value(self, client, headers, project_id, base_task_ids):
        children = self.create_children(client, headers, project_id, base_task_ids[0], [60, 40])

        response = client.put(
            f"/projects/{project_id}/tasks/{children[0]}", json={"name": "Formwork", "value": 60}, headers=headers
        )

        assert response.status_code == 200
        task = client.get(f"/projects/{project_id}/tasks/{children[0]}", headers=headers).json()
        assert task["name"] == "Formwork"

    def test_deleting_one_of_several_subtasks_rejected(self, client, headers, project_id, base_task_ids):
        children = self.create_children(client, headers, project_id, base_task_ids[0], [60, 40])

        response = client.delete(f"/projects/{project_id}/tasks/{children[1]}", headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_VALUE_SUM_MUST_BE_100"
        remaining = client.get(
            f"/projects/{project_id}/tasks", params={"task_id": base_task_ids[0]}, headers=headers
        ).json()
        assert len(remaining) == 2

    def test_deleting_the_only_subtask(self, client, headers, project_id, base_task_ids):
        children = self.create_children(client, headers, project_id, base_task_ids[0], [100])

        response = client.delete(f"/projects/{project_id}/tasks/{children[0]}", headers=headers)

        assert response.status_code == 200

    def test_start_checks_subtask_sums(self, client, headers, db_session, project_id, base_task_ids):
        children = self.create_children(client, headers, project_id, base_task_ids[0], [60, 40])
        db_session.query(ProjectTask).filter(ProjectTask.id == children[0]).update({"value": 10})
        db_session.commit()

        response = client.post(
            f"/projects/{project_id}/reports",
            json={"actual": [{"task_id": base_task_ids[1], "value": 10}]},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "PROJECT_TASK_VALUE_SUM_MUST_BE_100"
        assert client.get(f"/projects/{project_id}").json()["status"][0]["kind"] == "pending"


class TestTaskStatus:
    """Task status transitions and their effect on the project."""

    def test_illegal_transition(self, client, headers, project_id, base_task_ids):
        response = client.patch(
            f"/projects/{project_id}/tasks/{base_task_ids[0]}/status", json={"kind": "finished"}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "INVALID_STATUS"

    def test_run_pause_and_finish(self, client, headers, project_id, base_task_ids):
        url = f"/projects/{project_id}/tasks"

        assert client.patch(f"{url}/{base_task_ids[0]}/status", json={"kind": "running"}, headers=headers).status_code == 200
        assert client.get(f"/projects/{project_id}").json()["status"][0]["kind"] == "running"

        client.patch(f"{url}/{base_task_ids[0]}/status", json={"kind": "paused"}, headers=headers)
        assert client.get(f"/projects/{project_id}").json()["status"][0]["kind"] == "paused"

        for task_id in base_task_ids:
            client.patch(f"{url}/{task_id}/status", json={"kind": "running"}, headers=headers)
            client.patch(f"{url}/{task_id}/status", json={"kind": "finished"}, headers=headers)
        assert client.get(f"/projects/{project_id}").json()["status"][0]["kind"] == "finished"

    def test_subtasks_finish_parent(self, client, headers, project_id, base_task_ids):
        url = f"/projects/{project_id}/tasks"
        children = client.post(f"{url}/{base_task_ids[0]}", json=subtasks([50, 50]), headers=headers).json()["_id"]

        for child in children:
            client.patch(f"{url}/{child}/status", json={"kind": "running"}, headers=headers)
            client.patch(f"{url}/{child}/status", json={"kind": "finished"}, headers=headers)

        parent = client.get(f"{url}/{base_task_ids[0]}", headers=headers).json()
        assert parent["status"][0]["kind"] == "finished"


class TestAreasAndTimeline:
    """Areas, deletion and the flat timeline."""

    def test_delete_task_removes_subtasks(self, client, headers, project_id, base_task_ids):
        url = f"/projects/{project_id}/tasks"
        client.post(f"{url}/{base_task_ids[0]}", json=subtasks([100]), headers=headers)

        assert client.delete(f"{url}/{base_task_ids[0]}", headers=headers).status_code == 200

        remaining = client.get(url, headers=headers).json()
        assert [t["_id"] for t in remaining] == [base_task_ids[1]]

    def test_delete_area_removes_its_tasks(self, client, headers, project_id, area_id, base_task_ids):
        response = client.delete(f"/projects/{project_id}/areas/{area_id}", headers=headers)

        assert response.status_code == 200
        assert client.get(f"/projects/{project_id}/tasks", headers=headers).json() == []
        assert client.get(f"/projects/{project_id}/areas").json() == []

    def test_area_summary(self, client, headers, project_id, base_task_ids):
        areas = client.get(f"/projects/{project_id}/areas").json()

        assert areas[0]["name"] == "Deck"
        assert sorted(t["value"] for t in areas[0]["task"]) == [40, 60]

    def test_timeline_orders_scheduled_first(self, client, headers, project_id, base_task_ids):
        client.patch(
            f"/projects/{project_id}/tasks/{base_task_ids[1]}/period",
            json={"start": PROJECT_START, "end": PROJECT_START + DAY_MS},
            headers=headers,
        )

        timeline = client.get(f"/projects/{project_id}/timeline").json()

        assert [t["_id"] for t in timeline] == [base_task_ids[1], base_task_ids[0]]
        assert timeline[0]["area"]["name"] == "Deck"
