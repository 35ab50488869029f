"""Advanced search, filter options, saved searches and the admin dashboard over HTTP."""
from conftest import auth, create_company, create_member


class TestAdvancedSearchApi:
    def test_term_and_filters(self, client, admin, company_id, member):
        create_member(client, admin, company_id, email="john@example.com", first_name="John",
                      last_name="Doe", gender="male", region="East", status="dormant")

        resp = client.post("/search", json={
            "search_term": "doe",
            "modules": ["members"],
            "filters": {"member_gender": "male"},
        }, headers=admin)

        assert resp.status_code == 200
        data = resp.json()
        assert [m["first_name"] for m in data["members"]] == ["John"]
        assert data["members"][0]["company_name"] == "Acme Corp"
        assert data["companies"] == []
        assert data["total_count"] == 1

    def test_defaults_search_everything(self, client, admin, company_id, member):
        data = client.post("/search", json={}, headers=admin).json()
        assert len(data["companies"]) == 1
        assert len(data["members"]) == 1
        assert data["total_count"] == 2

    def test_no_modules_selected(self, client, admin, company_id, member):
        data = client.post("/search", json={"modules": []}, headers=admin).json()
        assert data == {"companies": [], "members": [], "documents": [], "total_count": 0}

    def test_limit_truncates(self, client, admin, company_id):
        for i in range(3):
            create_member(client, admin, company_id, email=f"m{i}@example.com", first_name=f"M{i}")
        data = client.post("/search", json={"modules": ["members"], "limit": 2}, headers=admin).json()
        assert len(data["members"]) == 2
        assert data["total_count"] == 3

    def test_validation(self, client, admin):
        assert client.post("/search", json={"modules": ["payroll"]}, headers=admin).status_code == 422
        assert client.post("/search", json={"limit": 0}, headers=admin).status_code == 422
        assert client.post("/search", json={"filters": {"member_status": "retired"}}, headers=admin).status_code == 422

    def test_filter_options(self, client, admin, company_id):
        create_company(client, admin, name="Beta", region="North", branch="Tamale")
        create_member(client, admin, company_id, department="HR", position="Clerk", region="South")
        data = client.get("/search/filter-options", headers=admin).json()
        assert data["regions"] == ["East", "North", "South"]
        assert data["branches"] == ["Accra", "Tamale"]
        assert data["departments"] == ["HR"]
        assert data["positions"] == ["Clerk"]
        assert [c["name"] for c in data["companies"]] == ["Acme Corp", "Beta"]


class TestSavedSearchApi:
    def save(self, client, headers, **fields):
        payload = {"name": "Dormant staff", "modules": ["members"], "filters": {"member_status": "dormant"}}
        payload.update(fields)
        resp = client.post("/search/saved", json=payload, headers=headers)
        assert resp.status_code == 200, resp.text
        return resp.json()["search_id"]

    def test_round_trip(self, client, admin):
        search_id = self.save(client, admin, search_term="doe")
        saved = client.get("/search/saved", headers=admin).json()
        assert len(saved) == 1
        assert saved[0]["_id"] == search_id
        assert saved[0]["search_term"] == "doe"
        assert saved[0]["modules"] == ["members"]
        assert saved[0]["filters"] == {"member_status": "dormant"}
        assert saved[0]["use_count"] == 0

    def test_empty_module_list_round_trips(self, client, admin):
        self.save(client, admin, modules=[])
        assert client.get("/search/saved", headers=admin).json()[0]["modules"] == []

    def test_blank_name(self, client, admin):
        resp = client.post("/search/saved", json={"name": " ", "modules": ["members"]}, headers=admin)
        assert resp.status_code == 400

    def test_use_increments_count(self, client, admin):
        search_id = self.save(client, admin)
        assert client.post(f"/search/saved/{search_id}/use", headers=admin).json()["use_count"] == 1
        assert client.post(f"/search/saved/{search_id}/use", headers=admin).json()["use_count"] == 2

    def test_update_and_delete(self, client, admin):
        search_id = self.save(client, admin)
        resp = client.put(f"/search/saved/{search_id}", json={"name": "Renamed"}, headers=admin)
        assert resp.json() == {"updated": True}
        saved = client.get("/search/saved", headers=admin).json()[0]
        assert saved["name"] == "Renamed"
        assert saved["filters"] == {"member_status": "dormant"}

        assert client.delete(f"/search/saved/{search_id}", headers=admin).json() == {"deleted": True}
        assert client.get("/search/saved", headers=admin).json() == []

    def test_missing_search_is_not_found(self, client, admin):
        missing = "5f0000000000000000000000"
        assert client.post(f"/search/saved/{missing}/use", headers=admin).status_code == 404
        assert client.put(f"/search/saved/{missing}", json={"name": "x"}, headers=admin).status_code == 404
        assert client.delete(f"/search/saved/{missing}", headers=admin).status_code == 404
        assert client.post("/search/saved/not-an-id/use", headers=admin).status_code == 404

    def test_blank_rename(self, client, admin):
        search_id = self.save(client, admin)
        resp = client.put(f"/search/saved/{search_id}", json={"name": "  "}, headers=admin)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Search name is required"

    def test_searches_are_private(self, client, admin, member):
        search_id = self.save(client, admin)
        headers = auth(member["user_id"])
        assert client.get("/search/saved", headers=headers).json() == []
        assert client.post(f"/search/saved/{search_id}/use", headers=headers).status_code == 404
        assert client.delete(f"/search/saved/{search_id}", headers=headers).status_code == 404

    def test_requires_login(self, client):
        assert client.get("/search/saved").status_code == 401


class TestDashboard:
    def test_counts(self, client, admin, company_id, member):
        create_member(client, admin, company_id, email="john@example.com", first_name="John", status="dormant")
        upload = client.post("/storage/upload", content=b"x", headers={**admin, "Content-Type": "text/plain"})
        client.post("/documents", json={
            "member_id": member["member_id"], "title": "Note", "storage_id": upload.json()["storage_id"],
        }, headers=admin)

        data = client.get("/admin/dashboard", headers=admin).json()
        assert data["total_companies"] == 1
        assert data["total_members"] == 2
        assert data["active_members"] == 1
        assert data["dormant_members"] == 1
        assert data["total_documents"] == 1
        assert data["documents_this_month"] == 1
        assert [d["title"] for d in data["recent_documents"]] == ["Note"]
        assert len(data["recent_members"]) == 2
