import pytest
from fastapi.testclient import TestClient

from app.main import app, current_user
from identity.client import AuthenticationError
from identity.users import AuthenticatedUser


@pytest.fixture()
def client(session_factory, world, monkeypatch):
    monkeypatch.setattr("app.main.SessionLocal", session_factory)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _login(user_id: int, is_admin: bool = False) -> None:
    user = AuthenticatedUser(
        id=user_id,
        firebase_uid=f"uid-{user_id}",
        email=f"user{user_id}@example.com",
        display_name=None,
        is_admin=is_admin,
    )
    app.dependency_overrides[current_user] = lambda: user


def _projects_url(world, *parts) -> str:
    return "/".join([f"/campaigns/{world.campaign_id}/projects", *map(str, parts)])


def _create(client, world, name: str, **fields) -> dict:
    body = {"character_id": world.player_character_id, "name": name, "goal_points": 10}
    body.update(fields)
    response = client.post(_projects_url(world), json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_project_records_history(client, world) -> None:
    _login(world.player_id)

    project = _create(client, world, "  Craft a relic  ", description="Old ruins", goal_points=30)

    assert project["name"] == "Craft a relic"
    assert project["campaign_id"] == world.campaign_id
    assert project["character_name"] == "Vera"
    assert project["current_points"] == 0
    assert project["progress_percentage"] == 0
    assert project["created_by"]["id"] == world.player_id
    assert project["created_by"]["email"] == "player@example.com"

    detail = client.get(_projects_url(world, project["id"]), params={"include_history": True})
    history = detail.json()["history"]
    assert [(entry["action"], entry["notes"]) for entry in history] == [
        ("created", "Project created")
    ]


def test_create_project_validation_errors(client, world) -> None:
    _login(world.player_id)
    url = _projects_url(world)
    base = {"character_id": world.player_character_id, "name": "Bad"}

    assert client.post(url, json={**base, "goal_points": 0}).status_code == 400
    assert client.post(url, json={**base, "name": "  ", "goal_points": 5}).status_code == 400
    assert (
        client.post(url, json={**base, "goal_points": 5, "current_points": 6}).status_code == 400
    )
    assert (
        client.post(url, json={**base, "goal_points": 5, "current_points": -1}).status_code == 400
    )

    response = client.post(url, json={**base, "goal_points": 5, "parent_project_id": 999})
    assert response.status_code == 400
    assert response.json()["detail"] == "Parent project not found"


def test_create_project_requires_character_permission(client, world) -> None:
    _login(world.player_id)
    body = {"character_id": world.gm_character_id, "name": "Not mine", "goal_points": 5}

    response = client.post(_projects_url(world), json=body)

    assert response.status_code == 403


def test_create_project_in_unknown_campaign(client, world) -> None:
    _login(world.player_id)
    body = {"character_id": world.player_character_id, "name": "Lost", "goal_points": 5}

    assert client.post("/campaigns/999/projects", json=body).status_code == 404


def test_list_projects_as_tree_and_flat(client, world) -> None:
    _login(world.player_id)
    root = _create(client, world, "Root")
    child = _create(client, world, "Child", parent_project_id=root["id"])
    done = _create(client, world, "Done", goal_points=2, current_points=2)
    client.post(_projects_url(world, done["id"], "complete"))

    tree = client.get(_projects_url(world)).json()
    flat = client.get(_projects_url(world), params={"flat": True}).json()
    open_only = client.get(
        _projects_url(world), params={"flat": True, "include_completed": False}
    ).json()

    assert tree["count"] == 2
    assert tree["projects"][0]["id"] == root["id"]
    assert tree["projects"][0]["children"][0]["id"] == child["id"]
    assert flat["count"] == 3
    assert "children" not in flat["projects"][0]
    assert {p["id"] for p in open_only["projects"]} == {root["id"], child["id"]}


def test_list_projects_for_non_member_is_empty(client, world) -> None:
    _login(world.player_id)
    _create(client, world, "Secret plan")

    _login(world.outsider_id)
    response = client.get(_projects_url(world))

    assert response.status_code == 200
    assert response.json() == {"count": 0, "projects": []}


def test_get_project_with_children_and_aggregate(client, world) -> None:
    _login(world.player_id)
    root = _create(client, world, "Root", current_points=5)
    child = _create(client, world, "Child", current_points=5, parent_project_id=root["id"])

    response = client.get(_projects_url(world, root["id"]), params={"include_children": True})

    assert response.status_code == 200
    data = response.json()
    assert [c["id"] for c in data["children"]] == [child["id"]]
    assert data["aggregate_progress"] == {
        "total_goal_points": 20,
        "total_current_points": 10,
        "total_percentage": 50,
    }
    assert "history" not in data


def test_get_project_hidden_from_outsiders_and_other_campaigns(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Private")

    assert client.get(f"/campaigns/{world.other_campaign_id}/projects/{project['id']}").status_code == 404

    _login(world.outsider_id)
    assert client.get(_projects_url(world, project["id"])).status_code == 404


def test_progress_increment_auto_completes(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Sprint")
    url = _projects_url(world, project["id"], "progress")

    first = client.patch(url, json={"increment_by": 3})
    second = client.patch(url, json={"increment_by": 7, "notes": "Final push"})

    assert first.json()["current_points"] == 3
    assert first.json()["is_completed"] is False
    finished = second.json()
    assert finished["current_points"] == 10
    assert finished["progress_percentage"] == 100
    assert finished["is_completed"] is True
    assert finished["completed_at"] is not None

    history = client.get(
        _projects_url(world, project["id"]), params={"include_history": True}
    ).json()["history"]
    assert [entry["action"] for entry in history] == [
        "updated_progress",
        "updated_progress",
        "created",
    ]
    assert history[0]["notes"] == "Final push"


def test_progress_overflow_is_rejected(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Careful", current_points=7)
    url = _projects_url(world, project["id"], "progress")

    response = client.patch(url, json={"increment_by": 5})

    assert response.status_code == 400
    current = client.get(_projects_url(world, project["id"])).json()
    assert current["current_points"] == 7


def test_progress_requires_a_value(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Idle")
    url = _projects_url(world, project["id"], "progress")

    assert client.patch(url, json={}).status_code == 400
    assert client.patch(url, json={"current_points": -2}).status_code == 400


def test_progress_by_outsider_is_forbidden(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Mine")

    _login(world.outsider_id)
    response = client.patch(
        _projects_url(world, project["id"], "progress"), json={"current_points": 1}
    )

    assert response.status_code == 403


def test_update_rejects_cycles_and_low_goals(client, world) -> None:
    _login(world.player_id)
    root = _create(client, world, "Root", current_points=4)
    child = _create(client, world, "Child", parent_project_id=root["id"])

    cycle = client.put(_projects_url(world, root["id"]), json={"parent_project_id": child["id"]})
    low_goal = client.put(_projects_url(world, root["id"]), json={"goal_points": 3})
    blank = client.put(_projects_url(world, root["id"]), json={"name": "   "})

    assert cycle.status_code == 400
    assert cycle.json()["detail"].startswith("Circular reference detected")
    assert low_goal.status_code == 400
    assert blank.status_code == 400


def test_update_goal_and_detach_parent(client, world) -> None:
    _login(world.player_id)
    root = _create(client, world, "Root")
    child = _create(client, world, "Child", parent_project_id=root["id"])

    response = client.put(
        _projects_url(world, child["id"]),
        json={"goal_points": 25, "parent_project_id": None, "description": "Standalone"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["goal_points"] == 25
    assert data["parent_project_id"] is None
    assert data["description"] == "Standalone"
    history = client.get(
        _projects_url(world, child["id"]), params={"include_history": True}
    ).json()["history"]
    assert history[0]["action"] == "updated_goal"


def test_update_without_parent_field_keeps_parent(client, world) -> None:
    _login(world.player_id)
    root = _create(client, world, "Root")
    child = _create(client, world, "Child", parent_project_id=root["id"])

    response = client.put(_projects_url(world, child["id"]), json={"name": "Renamed"})

    assert response.json()["name"] == "Renamed"
    assert response.json()["parent_project_id"] == root["id"]


def test_gm_completes_player_project(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Quest")

    _login(world.gm_id)
    response = client.post(_projects_url(world, project["id"], "complete"))

    assert response.status_code == 200
    assert response.json()["is_completed"] is True
    assert response.json()["current_points"] == 0


def test_delete_hides_project_and_logs(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Abandoned")

    response = client.delete(_projects_url(world, project["id"]))

    assert response.status_code == 204
    assert client.get(_projects_url(world)).json()["count"] == 0
    listed = client.get(_projects_url(world), params={"include_deleted": True}).json()
    assert listed["projects"][0]["is_deleted"] is True


def test_player_cannot_delete_gm_project(client, world) -> None:
    _login(world.gm_id)
    project = _create(client, world, "GM plot", character_id=world.gm_character_id)

    _login(world.player_id)
    response = client.delete(_projects_url(world, project["id"]))

    assert response.status_code == 403


def test_character_projects(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Personal")

    mine = client.get(f"/characters/{world.player_character_id}/projects")
    _login(world.outsider_id)
    denied = client.get(f"/characters/{world.player_character_id}/projects")

    assert mine.status_code == 200
    assert [p["id"] for p in mine.json()["projects"]] == [project["id"]]
    assert denied.status_code == 404


def test_admin_sees_everything(client, world) -> None:
    _login(world.player_id)
    project = _create(client, world, "Audited")

    _login(world.outsider_id, is_admin=True)

    assert client.get(_projects_url(world)).json()["count"] == 1
    assert client.get(_projects_url(world, project["id"])).status_code == 200


def test_campaign_membership_endpoints(client, world) -> None:
    _login(world.outsider_id)
    created = client.post("/campaigns", json={"name": "New table"})
    assert created.status_code == 201
    campaign_id = created.json()["id"]

    added = client.post(
        f"/campaigns/{campaign_id}/members", json={"user_id": world.player_id}
    )
    assert added.status_code == 200
    assert added.json()["role"] == "player"

    _login(world.player_id)
    forbidden = client.post(
        f"/campaigns/{campaign_id}/members", json={"user_id": world.gm_id, "role": "gm"}
    )
    assert forbidden.status_code == 403

    character = client.post(
        "/characters", json={"name": "Rook", "campaign_id": campaign_id}
    )
    assert character.status_code == 201
    assert character.json()["owner_user_id"] == world.player_id


def test_missing_authorization_header(client) -> None:
    assert client.get("/campaigns/1/projects").status_code == 401
    response = client.get("/campaigns/1/projects", headers={"Authorization": "Token abc"})
    assert response.status_code == 401


def test_failed_token_verification(client, monkeypatch) -> None:
    def reject(db, token):
        raise AuthenticationError("Token has expired. Please sign in again.")

    monkeypatch.setattr("app.main.verify_and_upsert_user", reject)

    response = client.get("/campaigns/1/projects", headers={"Authorization": "Bearer abc"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired. Please sign in again."


def test_create_project_with_character_from_another_campaign(client, world) -> None:
    _login(world.outsider_id)
    body = {"character_id": world.outsider_character_id, "name": "Intrusion", "goal_points": 5}

    response = client.post(_projects_url(world), json=body)

    assert response.status_code == 400
    assert response.json()["detail"] == "Character does not belong to this campaign"
    _login(world.gm_id)
    assert client.get(_projects_url(world)).json()["count"] == 0


def test_reparent_that_would_exceed_depth_is_rejected(client, world) -> None:
    _login(world.player_id)
    parent_id = None
    for level in range(5):
        parent_id = _create(client, world, f"Level {level}", parent_project_id=parent_id)["id"]
    top = _create(client, world, "Branch")
    _create(client, world, "Twig", parent_project_id=top["id"])

    response = client.put(_projects_url(world, top["id"]), json={"parent_project_id": parent_id})

    assert response.status_code == 400
    assert response.json()["detail"].startswith("Maximum project depth exceeded")
    assert client.get(_projects_url(world, top["id"])).json()["parent_project_id"] is None
