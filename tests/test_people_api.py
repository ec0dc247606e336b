"""
Tests for the People API routes.
"""
import pytest

from api.services.relationship_facts import RelationshipFact

pytestmark = pytest.mark.unit


class TestPeopleAPI:
    """Tests for the /api/people endpoints."""

    @pytest.fixture
    def client(self, user_id):
        from fastapi.testclient import TestClient
        from api.main import app
        return TestClient(app, headers={"X-User-Id": user_id})

    def test_create_and_get(self, client):
        response = client.post("/api/people", json={"name": "Sarah Lee", "nickname": "Sare"})
        assert response.status_code == 201
        created = response.json()
        assert created["name"] == "Sarah Lee"
        assert created["person_type"] == "primary"
        assert created["added_by"] == "user"

        fetched = client.get(f"/api/people/{created['id']}").json()
        assert fetched["nickname"] == "Sare"

    def test_create_invalid_type(self, client):
        response = client.post("/api/people", json={"name": "Sarah", "person_type": "friend"})
        assert response.status_code == 400

    def test_create_empty_name(self, client):
        assert client.post("/api/people", json={"name": ""}).status_code == 400

    def test_default_user(self, client, make_person):
        """Requests without X-User-Id use the configured default owner."""
        from fastapi.testclient import TestClient
        from api.main import app

        make_person("Sarah")
        anonymous = TestClient(app)
        assert anonymous.get("/api/people").json()["total"] == 0

    def test_list(self, client, make_person):
        make_person("Bob")
        make_person("alice")
        data = client.get("/api/people").json()
        assert [p["name"] for p in data["people"]] == ["alice", "Bob"]
        assert data["total"] == 2

    def test_get_missing(self, client):
        assert client.get("/api/people/missing").status_code == 404

    def test_update(self, client, make_person):
        person = make_person("Sarah")
        response = client.patch(f"/api/people/{person.id}", json={"status": "archived", "nickname": "S"})
        assert response.status_code == 200
        assert response.json()["status"] == "archived"
        assert response.json()["nickname"] == "S"

    def test_update_cannot_set_merged(self, client, make_person):
        person = make_person("Sarah")
        assert client.patch(f"/api/people/{person.id}", json={"status": "merged"}).status_code == 400

    def test_update_invalid_enum(self, client, make_person):
        person = make_person("Sarah")
        assert client.patch(f"/api/people/{person.id}", json={"importance_to_user": "huge"}).status_code == 400

    def test_merge(self, client, make_person, fact_store, user_id):
        source = make_person("Sarah L")
        target = make_person("Sarah Lee")
        fact_store.add(RelationshipFact(user_id=user_id, subject_id=source.id,
                                        relation_kind="LIKES", object_label="tea"))

        response = client.post(f"/api/people/{source.id}/merge", json={"target_id": target.id})

        assert response.status_code == 200
        data = response.json()
        assert data["target"]["id"] == target.id
        assert data["facts_moved"] == 1
        assert client.get(f"/api/people/{source.id}").json()["status"] == "merged"
        assert client.patch(f"/api/people/{source.id}", json={"nickname": "x"}).status_code == 409

    def test_merge_missing_target(self, client, make_person):
        person = make_person("Sarah")
        response = client.post(f"/api/people/{person.id}/merge", json={"target_id": "missing"})
        assert response.status_code == 404

    def test_merge_into_self(self, client, make_person):
        person = make_person("Sarah")
        response = client.post(f"/api/people/{person.id}/merge", json={"target_id": person.id})
        assert response.status_code == 400

    def test_facts_follow_merged_id(self, client, make_person, fact_store, user_id):
        source = make_person("Sarah L")
        target = make_person("Sarah Lee")
        fact_store.add(RelationshipFact(user_id=user_id, subject_id=target.id,
                                        relation_kind="FEARS", object_label="spiders"))
        client.post(f"/api/people/{source.id}/merge", json={"target_id": target.id})

        data = client.get(f"/api/people/{source.id}/facts").json()
        assert data["person_id"] == target.id
        assert [f["object_label"] for f in data["facts"]] == ["spiders"]

    def test_facts_missing_person(self, client):
        assert client.get("/api/people/missing/facts").status_code == 404
