"""
Agency Hub
Tests — users, companies and contacts API.

Covers:
    - User create/list + duplicate email
    - Company CRUD + search + delete guard
    - Contact CRUD + company filter
"""


def _create_company(client, **kw):
    payload = {"name": "Acme Studio", "industry": "Design"}
    payload.update(kw)
    res = client.post("/api/v1/companies", json=payload)
    assert res.status_code == 201
    return res.get_json()


def _create_contact(client, **kw):
    payload = {"first_name": "Lena", "last_name": "Park", "email": "lena@acme.test"}
    payload.update(kw)
    res = client.post("/api/v1/contacts", json=payload)
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# USERS
# ═════════════════════════════════════════════════════════════════════════════


class TestUsers:
    def test_create_user(self, client):
        res = client.post("/api/v1/users", json={"email": "Ops@Agency.test", "first_name": "Ola"})
        assert res.status_code == 201
        data = res.get_json()
        assert data["email"] == "ops@agency.test"
        assert data["display_name"] == "Ola"

    def test_display_name_falls_back_to_email(self, client):
        res = client.post("/api/v1/users", json={"email": "bot@agency.test"})
        assert res.get_json()["display_name"] == "bot@agency.test"

    def test_email_required(self, client):
        res = client.post("/api/v1/users", json={"full_name": "No Mail"})
        assert res.status_code == 400

    def test_duplicate_email(self, client, user):
        res = client.post("/api/v1/users", json={"email": "DANA@agency.test"})
        assert res.status_code == 409

    def test_list_users(self, client, user, other_user):
        res = client.get("/api/v1/users")
        assert res.status_code == 200
        names = [u["display_name"] for u in res.get_json()]
        assert set(names) == {"Dana Reyes", "Sam Ito"}


# ═════════════════════════════════════════════════════════════════════════════
# COMPANIES
# ═════════════════════════════════════════════════════════════════════════════


class TestCompanyCRUD:
    def test_create(self, client):
        company = _create_company(client, website="https://acme.test")
        assert company["name"] == "Acme Studio"
        assert company["website"] == "https://acme.test"
        assert company["email"] is None

    def test_name_required(self, client):
        res = client.post("/api/v1/companies", json={"name": "   "})
        assert res.status_code == 400
        assert res.get_json()["error"] == "name is required"

    def test_list_sorted_and_search(self, client):
        _create_company(client, name="Zeta Labs")
        _create_company(client, name="Acme Studio")
        names = [c["name"] for c in client.get("/api/v1/companies").get_json()]
        assert names == ["Acme Studio", "Zeta Labs"]

        res = client.get("/api/v1/companies?q=zeta")
        assert [c["name"] for c in res.get_json()] == ["Zeta Labs"]

    def test_get_includes_contacts(self, client):
        company = _create_company(client)
        _create_contact(client, company_id=company["id"])
        res = client.get(f"/api/v1/companies/{company['id']}")
        assert res.status_code == 200
        assert [c["full_name"] for c in res.get_json()["contacts"]] == ["Lena Park"]

    def test_get_not_found(self, client):
        assert client.get("/api/v1/companies/9999").status_code == 404

    def test_update(self, client):
        company = _create_company(client)
        res = client.put(f"/api/v1/companies/{company['id']}", json={"phone": "555-0100", "industry": ""})
        assert res.status_code == 200
        data = res.get_json()
        assert data["phone"] == "555-0100"
        assert data["industry"] is None

    def test_update_empty_name(self, client):
        company = _create_company(client)
        res = client.put(f"/api/v1/companies/{company['id']}", json={"name": ""})
        assert res.status_code == 400

    def test_delete(self, client):
        company = _create_company(client)
        res = client.delete(f"/api/v1/companies/{company['id']}")
        assert res.status_code == 200
        assert client.get(f"/api/v1/companies/{company['id']}").status_code == 404

    def test_delete_with_projects_refused(self, client, website_project):
        res = client.delete(f"/api/v1/companies/{website_project['company_id']}")
        assert res.status_code == 409
        assert "project" in res.get_json()["error"]


# ═════════════════════════════════════════════════════════════════════════════
# CONTACTS
# ═════════════════════════════════════════════════════════════════════════════


class TestContactCRUD:
    def test_create_and_filter(self, client, company):
        _create_contact(client, company_id=company["id"])
        _create_contact(client, first_name="Omar", email="omar@free.test")

        everyone = client.get("/api/v1/contacts").get_json()
        assert len(everyone) == 2

        scoped = client.get(f"/api/v1/contacts?company_id={company['id']}").get_json()
        assert [c["first_name"] for c in scoped] == ["Lena"]

        nested = client.get(f"/api/v1/companies/{company['id']}/contacts").get_json()
        assert nested == scoped

    def test_first_name_required(self, client):
        res = client.post("/api/v1/contacts", json={"last_name": "Only"})
        assert res.status_code == 400

    def test_unknown_company(self, client):
        res = client.post("/api/v1/contacts", json={"first_name": "Lena", "company_id": 9999})
        assert res.status_code == 404

    def test_update(self, client, company):
        contact = _create_contact(client)
        res = client.put(f"/api/v1/contacts/{contact['id']}", json={
            "company_id": company["id"], "job_title": "CMO",
        })
        assert res.status_code == 200
        data = res.get_json()
        assert data["company_id"] == company["id"]
        assert data["job_title"] == "CMO"

    def test_delete(self, client):
        contact = _create_contact(client)
        res = client.delete(f"/api/v1/contacts/{contact['id']}")
        assert res.status_code == 200
        assert client.get("/api/v1/contacts").get_json() == []

    def test_company_delete_cascades_contacts(self, client):
        company = _create_company(client)
        _create_contact(client, company_id=company["id"])
        client.delete(f"/api/v1/companies/{company['id']}")
        assert client.get("/api/v1/contacts").get_json() == []
