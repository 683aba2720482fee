"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from familytree.main import create_app

GEDCOM = b"""0 HEAD
1 CHAR UTF-8
0 @I1@ INDI
1 NAME Ali /Hassan/
1 SEX M
1 FAMS @F1@
0 @I2@ INDI
1 NAME Ahmed /Ali/
1 SEX M
1 FAMC @F1@
0 @F1@ FAM
1 HUSB @I1@
1 CHIL @I2@
0 TRLR
"""


def as_user(user_id: int) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def client(db, config):
    return TestClient(create_app(db, config))


@pytest.fixture
def root(client):
    """Bootstrap the first account, which becomes the super admin."""
    response = client.post("/api/users", json={"username": "root"})
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def alice(client, root):
    response = client.post("/api/users", json={"username": "alice"}, headers=as_user(root["id"]))
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def family_tree(client, alice):
    response = client.post("/api/trees", json={"name": "Hassan Family"}, headers=as_user(alice["id"]))
    assert response.status_code == 201
    return response.json()


class TestUsers:
    """Test health checks and user accounts."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_first_user_is_super_admin(self, root):
        assert root["system_role"] == "super_admin"

    def test_second_user_needs_identity(self, client, root):
        response = client.post("/api/users", json={"username": "alice"})

        assert response.status_code == 401

    def test_only_super_admin_creates_users(self, client, alice):
        response = client.post("/api/users", json={"username": "bob"}, headers=as_user(alice["id"]))

        assert response.status_code == 403

    def test_me(self, client, alice):
        response = client.get("/api/users/me", headers=as_user(alice["id"]))

        assert response.json()["username"] == "alice"

    def test_unknown_user(self, client, root):
        response = client.get("/api/users/me", headers=as_user(999))

        assert response.status_code == 401
        assert response.json()["detail"] == "Unknown user: 999"

    def test_missing_header(self, client, root):
        assert client.get("/api/trees").status_code == 401


class TestTrees:
    """Test tree and person endpoints."""

    def test_owner_sees_tree(self, client, alice, family_tree):
        response = client.get("/api/trees", headers=as_user(alice["id"]))

        assert [t["id"] for t in response.json()] == [family_tree["id"]]

    def test_private_tree_forbidden(self, client, root, alice, family_tree):
        bob = client.post("/api/users", json={"username": "bob"}, headers=as_user(root["id"])).json()

        response = client.get(f"/api/trees/{family_tree['id']}", headers=as_user(bob["id"]))

        assert response.status_code == 403

    def test_missing_tree(self, client, alice):
        response = client.get("/api/trees/missing", headers=as_user(alice["id"]))

        assert response.status_code == 404

    def test_person_lifecycle(self, client, alice, family_tree):
        headers = as_user(alice["id"])
        created = client.post(
            f"/api/trees/{family_tree['id']}/persons",
            json={"primary_name": "Ali", "sex": 0, "birth_date": "1920-05-01"},
            headers=headers,
        )
        assert created.status_code == 201
        person_id = created.json()["id"]

        updated = client.put(f"/api/persons/{person_id}", json={"birth_place": "Aswan"}, headers=headers)
        assert updated.json()["birth_place"] == "Aswan"
        assert updated.json()["birth_date"] == "1920-05-01"

        found = client.get(f"/api/trees/{family_tree['id']}/persons", params={"q": "ali"}, headers=headers)
        assert found.json()["total"] == 1

        assert client.delete(f"/api/persons/{person_id}", headers=headers).status_code == 204
        assert client.get(f"/api/persons/{person_id}", headers=headers).status_code == 404

    def test_person_without_name(self, client, alice, family_tree):
        response = client.post(
            f"/api/trees/{family_tree['id']}/persons", json={"sex": 1}, headers=as_user(alice["id"])
        )

        assert response.status_code == 422

    def test_null_for_required_column(self, client, alice, family_tree):
        headers = as_user(alice["id"])
        person = client.post(
            f"/api/trees/{family_tree['id']}/persons", json={"primary_name": "Ali", "sex": 0}, headers=headers
        ).json()

        response = client.put(f"/api/persons/{person['id']}", json={"sex": None}, headers=headers)

        assert response.status_code == 422
        assert client.get(f"/api/persons/{person['id']}", headers=headers).json()["sex"] == 0

    def test_parent_link_and_pedigree(self, client, alice, family_tree):
        headers = as_user(alice["id"])
        url = f"/api/trees/{family_tree['id']}/persons"
        father = client.post(url, json={"primary_name": "Ali", "sex": 0}, headers=headers).json()
        son = client.post(url, json={"primary_name": "Ahmed", "sex": 0}, headers=headers).json()

        link = client.post(f"/api/persons/{son['id']}/parents/{father['id']}", headers=headers)
        assert link.status_code == 201

        again = client.post(f"/api/persons/{son['id']}/parents/{father['id']}", headers=headers)
        assert again.status_code == 409

        pedigree = client.get(f"/api/trees/{family_tree['id']}/pedigree/{son['id']}", headers=headers).json()
        assert [p["name"] for p in pedigree["parents"]] == ["Ali"]

        path = client.get(
            f"/api/trees/{family_tree['id']}/relationship-path",
            params={"person1": father["id"], "person2": son["id"]},
            headers=headers,
        ).json()
        assert path["path_length"] == 2


class TestGedcomEndpoints:
    """Test GEDCOM upload and download."""

    def test_preview(self, client, alice):
        response = client.post(
            "/api/gedcom/preview",
            files={"file": ("hassan.ged", GEDCOM, "text/plain")},
            headers=as_user(alice["id"]),
        )

        assert response.status_code == 200
        assert response.json()["statistics"]["total_individuals"] == 2

    def test_wrong_extension(self, client, alice):
        response = client.post(
            "/api/gedcom/preview",
            files={"file": ("hassan.txt", GEDCOM, "text/plain")},
            headers=as_user(alice["id"]),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Only .ged files are supported"

    def test_too_large(self, client, alice, config):
        config.gedcom_max_upload_bytes = 10

        response = client.post(
            "/api/gedcom/preview",
            files={"file": ("hassan.ged", GEDCOM, "text/plain")},
            headers=as_user(alice["id"]),
        )

        assert response.status_code == 400

    def test_import_then_export(self, client, alice):
        headers = as_user(alice["id"])
        imported = client.post(
            "/api/gedcom/import",
            files={"file": ("hassan.ged", GEDCOM, "text/plain")},
            data={"tree_name": "Hassan Family"},
            headers=headers,
        ).json()
        assert imported["success"]

        response = client.get(f"/api/trees/{imported['tree_id']}/gedcom", headers=headers)

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="Hassan_Family.ged"'
        assert "1 NAME Ali /Hassan/" in response.text


class TestTicketEndpoints:
    """Test support tickets and the audit log over HTTP."""

    def test_ticket_flow(self, client, root, alice):
        created = client.post(
            "/api/tickets",
            json={"subject": "Broken export", "description": "Export button does nothing"},
            headers=as_user(alice["id"]),
        )
        assert created.status_code == 201
        ticket_id = created.json()["id"]

        denied = client.put(f"/api/tickets/{ticket_id}/status", json={"status": 2}, headers=as_user(alice["id"]))
        assert denied.status_code == 403

        resolved = client.put(f"/api/tickets/{ticket_id}/status", json={"status": 2}, headers=as_user(root["id"]))
        assert resolved.json()["resolved_by_user_id"] == root["id"]

    def test_audit_log(self, client, alice, family_tree):
        headers = as_user(alice["id"])
        assert client.delete(f"/api/trees/{family_tree['id']}", headers=headers).status_code == 204

        entries = client.get("/api/audit", headers=headers).json()["items"]

        assert entries[0]["action"] == "tree.deleted"
        assert entries[0]["details"] == {"name": "Hassan Family"}


class TestReviewEndpoints:
    """Test duplicate, prediction and suggestion routes."""

    @pytest.fixture
    def people_url(self, family_tree):
        return f"/api/trees/{family_tree['id']}/persons"

    def test_suggestion_flow(self, client, root, alice, family_tree):
        bob = client.post("/api/users", json={"username": "bob"}, headers=as_user(root["id"])).json()
        client.post(
            f"/api/trees/{family_tree['id']}/members",
            json={"user_id": bob["id"], "role": 1},
            headers=as_user(alice["id"]),
        )
        payload = {
            "tree_id": family_tree["id"],
            "type": "add_person",
            "proposed_values": {"primary_name": "Hassan", "sex": 0},
        }

        created = client.post("/api/suggestions", json=payload, headers=as_user(bob["id"]))
        assert created.status_code == 201
        suggestion_id = created.json()["id"]
        assert client.post("/api/suggestions", json=payload, headers=as_user(bob["id"])).status_code == 409

        duplicate = client.get(
            "/api/suggestions/check-duplicate",
            params={"tree_id": family_tree["id"], "type": "add_person", "person_name": "hassan"},
            headers=as_user(bob["id"]),
        ).json()
        assert duplicate["duplicate_id"] == suggestion_id

        queue = client.get(
            "/api/suggestions/queue", params={"tree_id": family_tree["id"]}, headers=as_user(alice["id"])
        ).json()
        assert [item["id"] for item in queue["items"]] == [suggestion_id]
        assert client.post(f"/api/suggestions/{suggestion_id}/approve", headers=as_user(bob["id"])).status_code == 403

        approved = client.post(
            f"/api/suggestions/{suggestion_id}/approve",
            json={"reviewer_notes": "Confirmed"},
            headers=as_user(alice["id"]),
        ).json()
        assert approved["status"] == "approved"
        found = client.get(
            f"/api/trees/{family_tree['id']}/persons", params={"q": "hassan"}, headers=as_user(alice["id"])
        ).json()
        assert found["total"] == 1

    def test_invalid_update_suggestion(self, client, alice, family_tree, people_url):
        person = client.post(people_url, json={"primary_name": "Ali"}, headers=as_user(alice["id"])).json()

        response = client.post(
            "/api/suggestions",
            json={
                "tree_id": family_tree["id"],
                "type": "update_person",
                "target_person_id": person["id"],
                "proposed_values": {"sex": None},
            },
            headers=as_user(alice["id"]),
        )

        assert response.status_code == 400
        assert "Invalid proposed values" in response.json()["detail"]

    def test_duplicate_scan(self, client, root, alice, family_tree, people_url):
        for year in (1950, 1952):
            client.post(
                people_url,
                json={"primary_name": "Ahmed", "sex": 0, "birth_date": f"{year}-01-01"},
                headers=as_user(alice["id"]),
            )

        result = client.get(
            "/api/duplicates/scan", params={"tree_id": family_tree["id"]}, headers=as_user(root["id"])
        )
        denied = client.get(
            "/api/duplicates/scan", params={"tree_id": family_tree["id"]}, headers=as_user(alice["id"])
        )

        assert result.status_code == 200
        assert result.json()["total"] == 1
        assert denied.status_code == 403

    def test_prediction_scan_and_accept(self, client, root, alice, family_tree, people_url):
        headers = as_user(alice["id"])
        father = client.post(people_url, json={"primary_name": "Hassan", "sex": 0}, headers=headers).json()
        mother = client.post(people_url, json={"primary_name": "Amina", "sex": 1}, headers=headers).json()
        child = client.post(people_url, json={"primary_name": "Ali", "sex": 0}, headers=headers).json()
        for parent in (father, mother):
            client.post(f"/api/persons/{child['id']}/parents/{parent['id']}", headers=headers)

        scan = client.post(f"/api/trees/{family_tree['id']}/predictions/scan", headers=as_user(root["id"]))
        assert scan.json()["by_rule"] == {"missing_union": 1}

        page = client.get(
            f"/api/trees/{family_tree['id']}/predictions", params={"status": 0}, headers=as_user(root["id"])
        ).json()
        assert page["total"] == 1
        accepted = client.post(
            f"/api/predictions/{page['items'][0]['id']}/accept", headers=as_user(root["id"])
        ).json()

        assert accepted["applied_entity_type"] == "union"
        spouses = client.get(f"/api/persons/{father['id']}/spouses", headers=headers).json()
        assert [s["person_id"] for s in spouses] == [mother["id"]]


class TestLinkEndpoints:
    """Test cross-tree person link routes."""

    def test_link_request_and_review(self, client, root, alice, family_tree):
        bob = client.post("/api/users", json={"username": "bob"}, headers=as_user(root["id"])).json()
        other = client.post(
            "/api/trees",
            json={"name": "Osman Family", "is_public": True, "allow_cross_tree_linking": True},
            headers=as_user(bob["id"]),
        ).json()
        ours = client.post(
            f"/api/trees/{family_tree['id']}/persons", json={"primary_name": "Ali"}, headers=as_user(alice["id"])
        ).json()
        theirs = client.post(
            f"/api/trees/{other['id']}/persons", json={"primary_name": "Ali Hassan"}, headers=as_user(bob["id"])
        ).json()

        matches = client.get("/api/links/search", params={"name": "ali"}, headers=as_user(alice["id"])).json()
        assert [m["person_id"] for m in matches] == [theirs["id"]]

        created = client.post(
            "/api/links",
            json={"source_person_id": ours["id"], "target_person_id": theirs["id"]},
            headers=as_user(alice["id"]),
        )
        assert created.status_code == 201
        link_id = created.json()["id"]
        pending = client.get("/api/links/pending", headers=as_user(bob["id"])).json()
        assert [link["id"] for link in pending] == [link_id]

        reviewed = client.post(
            f"/api/links/{link_id}/review", json={"approve": True}, headers=as_user(bob["id"])
        ).json()
        assert reviewed["status"] == 1

        summary = client.get(f"/api/trees/{family_tree['id']}/links", headers=as_user(alice["id"])).json()
        assert summary[ours["id"]][0]["tree_name"] == "Osman Family"
        assert client.delete(f"/api/links/{link_id}", headers=as_user(alice["id"])).status_code == 204
        assert client.get(f"/api/persons/{ours['id']}/links", headers=as_user(alice["id"])).json() == []

    def test_closed_tree_rejects_links(self, client, alice, family_tree):
        headers = as_user(alice["id"])
        closed = client.post("/api/trees", json={"name": "Closed Family"}, headers=headers).json()
        a = client.post(f"/api/trees/{family_tree['id']}/persons", json={"primary_name": "Ali"}, headers=headers)
        b = client.post(f"/api/trees/{closed['id']}/persons", json={"primary_name": "Ali"}, headers=headers)

        response = client.post(
            "/api/links",
            json={"source_person_id": a.json()["id"], "target_person_id": b.json()["id"]},
            headers=headers,
        )

        assert response.status_code == 400
