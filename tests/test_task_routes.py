import pytest

from conftest import login_as, make_lagam, read_collection, write_collection


@pytest.fixture
def seeded(client, data_dir):
    write_collection(data_dir, "lagams.json", [make_lagam()])
    login_as(client, "USR-2", "Manager", "Mario Manager")
    return client


def _payload(**overrides):
    payload = {
        "lagamId": "LAG-1",
        "sectionName": "Cutting",
        "teamMemberId": "USR-3",
        "sizeQuantities": [{"size": "S", "quantity": 60}, {"size": "M", "quantity": 0}],
        "date": "2024-05-02",
        "timeSlot": "7:30 to 9:30",
    }
    payload.update(overrides)
    return payload


def test_create_task_computes_derived_fields(seeded, data_dir):
    response = seeded.post("/api/production-tasks", json=_payload())
    assert response.status_code == 201
    task = response.get_json()
    assert task["id"] == "1"
    assert task["quantity"] == 60
    assert task["status"] == "Pending"
    assert task["estimatedTime"] == 60
    assert task["operationStatus"] == [False, False]

    second = seeded.post(
        "/api/production-tasks",
        json=_payload(status="Completed", sizeQuantities=[{"size": "S", "quantity": 40}]),
    )
    assert second.get_json()["id"] == "2"
    assert second.get_json()["operationStatus"] == [True, True]
    assert len(read_collection(data_dir, "production-tasks.json")) == 2


def test_create_task_rejects_over_allocation(seeded, data_dir):
    assert seeded.post("/api/production-tasks", json=_payload()).status_code == 201

    response = seeded.post(
        "/api/production-tasks",
        json=_payload(sizeQuantities=[{"size": "S", "quantity": 50}]),
    )
    assert response.status_code == 400
    assert response.get_json() == {
        "message": "For size S, you can only schedule up to 40 more units.",
        "size": "S",
        "maxAvailable": 40,
    }
    assert len(read_collection(data_dir, "production-tasks.json")) == 1


def test_create_task_validation(seeded):
    assert (
        seeded.post("/api/production-tasks", json=_payload(lagamId="LAG-9")).status_code
        == 400
    )
    assert (
        seeded.post(
            "/api/production-tasks", json=_payload(sectionName="Packing")
        ).status_code
        == 400
    )
    assert (
        seeded.post(
            "/api/production-tasks", json=_payload(sizeQuantities=[])
        ).status_code
        == 400
    )
    assert (
        seeded.post("/api/production-tasks", json=_payload(status="Done")).status_code
        == 400
    )


def test_cannot_schedule_on_completed_lagam(client, data_dir):
    lagam = make_lagam(
        sections=[{"sectionName": "Cutting", "plannedOperations": [{"tiempo": 1}]}]
    )
    write_collection(data_dir, "lagams.json", [lagam])
    write_collection(
        data_dir,
        "production-tasks.json",
        [
            {
                "id": "1",
                "lagamId": "LAG-1",
                "sectionName": "Cutting",
                "status": "Completed",
                "sizeQuantities": [{"size": "S", "quantity": 100}, {"size": "M", "quantity": 100}],
                "quantity": 200,
            }
        ],
    )
    login_as(client)
    response = client.post("/api/production-tasks", json=_payload())
    assert response.status_code == 400
    assert response.get_json()["message"] == "This Lagam is already completed."


def test_operator_cannot_create_tasks(client, data_dir):
    write_collection(data_dir, "lagams.json", [make_lagam()])
    login_as(client, "USR-3", "Operator", "Olga Operator")
    assert client.post("/api/production-tasks", json=_payload()).status_code == 403


def test_update_task_revalidates_excluding_itself(seeded, data_dir):
    seeded.post("/api/production-tasks", json=_payload())

    full = seeded.put(
        "/api/production-tasks/1",
        json={"sizeQuantities": [{"size": "S", "quantity": 100}]},
    )
    assert full.status_code == 200
    assert full.get_json()["quantity"] == 100

    over = seeded.put(
        "/api/production-tasks/1",
        json={"sizeQuantities": [{"size": "S", "quantity": 101}]},
    )
    assert over.status_code == 400
    assert over.get_json()["maxAvailable"] == 100

    produced = seeded.put(
        "/api/production-tasks/1",
        json={
            "status": "In Progress",
            "sizeQuantitiesProduced": [{"size": "S", "quantity": 12}],
        },
    )
    assert produced.get_json()["quantityProduced"] == 12
    stored = read_collection(data_dir, "production-tasks.json")[0]
    assert stored["status"] == "In Progress"
    assert stored["quantity"] == 100

    assert seeded.put("/api/production-tasks/99", json={}).status_code == 404


def test_update_task_rejects_unknown_lagam_or_section(seeded, data_dir):
    seeded.post("/api/production-tasks", json=_payload())

    missing_lagam = seeded.put(
        "/api/production-tasks/1",
        json={"lagamId": "LAG-404", "sectionName": "Nope"},
    )
    assert missing_lagam.status_code == 400
    assert missing_lagam.get_json()["message"] == "Selected Lagam could not be found."

    missing_section = seeded.put("/api/production-tasks/1", json={"sectionName": "Nope"})
    assert missing_section.status_code == 400
    assert missing_section.get_json()["message"] == "Could not find the selected section."

    stored = read_collection(data_dir, "production-tasks.json")[0]
    assert (stored["lagamId"], stored["sectionName"]) == ("LAG-1", "Cutting")


def test_negative_size_quantities_are_rejected(seeded, data_dir):
    response = seeded.post(
        "/api/production-tasks",
        json=_payload(
            sizeQuantities=[{"size": "S", "quantity": -50}, {"size": "M", "quantity": 60}]
        ),
    )
    assert response.status_code == 400
    assert response.get_json()["size"] == "S"
    assert "negative" in response.get_json()["message"]
    assert read_collection(data_dir, "production-tasks.json") == []

    seeded.post("/api/production-tasks", json=_payload())
    update = seeded.put(
        "/api/production-tasks/1",
        json={"sizeQuantities": [{"size": "S", "quantity": -1}]},
    )
    assert update.status_code == 400


def test_text_times_are_stored_as_numbers(seeded, data_dir):
    created = seeded.post(
        "/api/production-tasks",
        json=_payload(status="In Progress", actualTime="60", estimatedTime="bad"),
    )
    assert created.status_code == 201
    stored = read_collection(data_dir, "production-tasks.json")[0]
    assert stored["actualTime"] == 60
    assert stored["estimatedTime"] == 60

    report = seeded.get(
        "/api/production-report?startDate=2024-05-02&endDate=2024-05-02"
    )
    assert report.status_code == 200


def test_list_tasks_filters_and_sorts(seeded, data_dir):
    write_collection(
        data_dir,
        "production-tasks.json",
        [
            {"id": "1", "lagamId": "LAG-1", "teamMemberId": "USR-3", "date": "2024-05-02"},
            {"id": "2", "lagamId": "LAG-1", "teamMemberId": "USR-4", "date": "2024-05-20T10:00:00Z"},
            {"id": "3", "lagamId": "LAG-2", "teamMemberId": "USR-3", "date": "2024-06-01"},
        ],
    )

    def ids(query=""):
        return [t["id"] for t in seeded.get(f"/api/production-tasks{query}").get_json()]

    assert ids() == ["3", "2", "1"]
    assert ids("?date=2024-05-02") == ["1"]
    assert ids("?month=2024-05") == ["2", "1"]
    assert ids("?lagamId=LAG-1&teamMemberId=USR-3") == ["1"]
    assert seeded.get("/api/production-tasks?date=yesterday").status_code == 400


def test_delete_task(seeded):
    seeded.post("/api/production-tasks", json=_payload())
    assert seeded.delete("/api/production-tasks/1").status_code == 200
    assert seeded.delete("/api/production-tasks/1").status_code == 404
