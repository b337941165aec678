"""
Agency Hub
Tests — global search API.

Covers:
    - Matches across companies, contacts, projects, invoices
    - Empty / wildcard-only queries
    - Per-section limit
"""

from agencyhub.services.search_service import normalize_query


class TestSearch:
    def test_matches_every_section(self, client, company, website_project):
        client.post("/api/v1/contacts", json={
            "first_name": "Nora", "last_name": "Westwind", "company_id": company["id"],
        })
        client.post("/api/v1/invoices", json={"client_name": "Northwind Bakery"})

        res = client.get("/api/v1/search?q=wind")
        assert res.status_code == 200
        data = res.get_json()
        assert [c["name"] for c in data["companies"]] == ["Northwind Bakery"]
        assert [c["last_name"] for c in data["contacts"]] == ["Westwind"]
        assert [p["name"] for p in data["projects"]] == ["Northwind website"]
        assert len(data["invoices"]) == 1

    def test_case_insensitive(self, client, company):
        data = client.get("/api/v1/search?q=NORTHWIND").get_json()
        assert len(data["companies"]) == 1

    def test_empty_query(self, client, company):
        data = client.get("/api/v1/search").get_json()
        assert data == {"companies": [], "contacts": [], "projects": [], "invoices": []}

    def test_wildcards_only(self, client, company):
        data = client.get("/api/v1/search?q=%25%25").get_json()
        assert data["companies"] == []

    def test_limit_per_section(self, client):
        for i in range(10):
            client.post("/api/v1/companies", json={"name": f"Studio {i:02d}"})
        data = client.get("/api/v1/search?q=studio").get_json()
        assert len(data["companies"]) == 8
        assert data["companies"][0]["name"] == "Studio 00"


class TestNormalizeQuery:
    def test_strips_like_wildcards(self):
        assert normalize_query("  50%_off ") == "50off"
        assert normalize_query(None) == ""
