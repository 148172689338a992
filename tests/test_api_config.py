"""Reference-data API: areas, coordinations, people, categories, SLA rules."""

from app.services.config_service import seed_defaults
from app.services.persistence import SqlRepository


class TestCoordinationsAndPeople:
    def test_create_list_update_delete(self, client):
        res = client.post("/api/v1/coordinations", json={"id": "coord-data", "name": "Data"})
        assert res.status_code == 201

        res = client.post("/api/v1/people", json={
            "name": "Carla", "role": "Analyst", "coordination_id": "coord-data", "email": "carla@example.com",
        })
        assert res.status_code == 201
        person_id = res.get_json()["id"]

        res = client.get("/api/v1/people")
        assert res.get_json()["total"] == 1

        res = client.put(f"/api/v1/people/{person_id}", json={"role": "Lead"})
        assert res.status_code == 200
        assert res.get_json()["role"] == "Lead"
        assert res.get_json()["name"] == "Carla"

        assert client.delete(f"/api/v1/people/{person_id}").status_code == 200
        assert client.get("/api/v1/people").get_json()["total"] == 0

    def test_person_requires_name(self, client):
        res = client.post("/api/v1/people", json={"role": "Analyst"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"name": "required"}

    def test_person_unknown_coordination(self, client):
        res = client.post("/api/v1/people", json={"name": "Dan", "coordination_id": "coord-x"})
        assert res.status_code == 404

    def test_bad_email(self, client):
        res = client.post("/api/v1/people", json={"name": "Eve", "email": "eve.example.com"})
        assert res.status_code == 422

    def test_duplicate_id(self, client, reference):
        res = client.post("/api/v1/areas", json={"id": "area-ops", "name": "Ops again"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_delete_missing(self, client):
        assert client.delete("/api/v1/areas/area-none").status_code == 404

    def test_unknown_collection(self, client):
        assert client.get("/api/v1/widgets").status_code == 404


class TestCategoriesAndSla:
    def test_category_name_unique(self, client, reference):
        res = client.post("/api/v1/categories", json={"name": "feature"})
        assert res.status_code == 409

    def test_sla_rule_lifecycle(self, client, reference):
        res = client.post("/api/v1/slas", json={
            "category_id": "cat-feature", "complexity": "high", "sla_hours": 120,
        })
        assert res.status_code == 201
        rule_id = res.get_json()["id"]

        res = client.put(f"/api/v1/slas/{rule_id}", json={"sla_hours": 96})
        assert res.status_code == 200
        assert res.get_json()["sla_hours"] == 96.0

    def test_sla_pair_is_unique(self, client, reference):
        res = client.post("/api/v1/slas", json={
            "category_id": "cat-feature", "complexity": "medium", "sla_hours": 10,
        })
        assert res.status_code == 409

    def test_sla_validation(self, client, reference):
        bad = [
            {"category_id": "cat-feature", "complexity": "extreme", "sla_hours": 10},
            {"category_id": "cat-feature", "complexity": "low", "sla_hours": 0},
            {"complexity": "low", "sla_hours": 5},
        ]
        for payload in bad:
            assert client.post("/api/v1/slas", json=payload).status_code == 422

    def test_deleting_category_drops_its_rules(self, client, reference):
        assert client.delete("/api/v1/categories/cat-feature").status_code == 200
        assert client.get("/api/v1/slas").get_json()["total"] == 0


class TestSeedDefaults:
    def test_seed_is_idempotent(self):
        repo = SqlRepository()
        first = seed_defaults(repo)
        assert first == 3 + 6
        assert seed_defaults(repo) == 0
        assert {c.name for c in repo.list_categories()} == {"Feature", "Bugfix", "Improvement"}
