"""Tests for image uploads and file serving."""

from tests.fixtures.project_fixtures import auth_headers


class TestFileServing:
    """GET /files."""

    def test_missing_file(self, client):
        response = client.get("/files", params={"kind": "user_image", "name": "nope/nope.png"})

        assert response.status_code == 404
        assert response.json()["detail"] == "CONTENT_NOT_FOUND"

    def test_parent_segments_refused(self, client, files_dir):
        (files_dir / "secret.txt").write_text("secret")

        response = client.get("/files", params={"kind": "user_image", "name": "../secret.txt"})

        assert response.status_code == 404

    def test_unknown_kind(self, client):
        response = client.get("/files", params={"kind": "passwords", "name": "x"})

        assert response.status_code == 400


class TestImageUploads:
    """Image replacement for users, customers and the company."""

    def test_user_uploads_own_image(self, client, owner, files_dir):
        response = client.put(
            f"/users/{owner['_id']}/image",
            files={"file": ("me.png", b"png-bytes", "image/png")},
            headers=owner["headers"],
        )

        assert response.status_code == 200
        image = response.json()["image"]
        assert image["extension"] == "png"
        served = client.get("/files", params={"kind": "user_image", "name": f"{owner['_id']}/{image['_id']}.png"})
        assert served.content == b"png-bytes"
        assert served.headers["content-type"] == "image/png"

    def test_customer_image_replaced(self, client, headers, customer_id, files_dir):
        url = f"/customers/{customer_id}/image"
        first = client.put(url, files={"file": ("a.png", b"a", "image/png")}, headers=headers).json()["image"]
        second = client.put(url, files={"file": ("b.jpg", b"b", "image/jpeg")}, headers=headers).json()["image"]

        folder = files_dir / "customers" / customer_id
        assert sorted(p.name for p in folder.iterdir()) == [f"{second['_id']}.jpg"]
        assert first["_id"] != second["_id"]
        assert client.get(f"/customers/{customer_id}", headers=headers).json()["image"] == second

    def test_upload_needs_extension(self, client, headers, customer_id):
        response = client.put(
            f"/customers/{customer_id}/image",
            files={"file": ("noext", b"x", "application/octet-stream")},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "INVALID_REQUEST"

    def test_other_user_image_needs_permission(self, client, headers, owner):
        role_id = client.post("/roles", json={"name": "Crew", "permission": ["get_user"]}, headers=headers).json()["_id"]
        client.post(
            "/users",
            json={"name": "crew", "email": "crew@example.com", "password": "password123", "role_id": [role_id]},
            headers=headers,
        )
        crew = auth_headers(client, "crew@example.com", "password123")

        response = client.put(
            f"/users/{owner['_id']}/image",
            files={"file": ("me.png", b"png", "image/png")},
            headers=crew,
        )

        assert response.status_code == 401


class TestCompanyAndCustomers:
    """Company profile and customer CRUD."""

    def test_company_not_found(self, client):
        response = client.get("/companies")

        assert response.status_code == 404
        assert response.json()["detail"] == "COMPANY_NOT_FOUND"

    def test_company_lifecycle(self, client, headers):
        company_id = client.post("/companies", json={"name": "Builder Co"}, headers=headers).json()["_id"]

        client.put(f"/companies/{company_id}", json={"name": "Builder Ltd", "field": ["civil"]}, headers=headers)
        image = client.put(
            f"/companies/{company_id}/image", files={"file": ("logo.svg", b"<svg/>", "image/svg+xml")}, headers=headers
        ).json()["image"]

        company = client.get("/companies").json()
        assert company["name"] == "Builder Ltd"
        assert company["field"] == ["civil"]
        assert company["image"] == image

    def test_customer_persons_get_fresh_ids(self, client, headers, customer_id):
        before = client.get(f"/customers/{customer_id}", headers=headers).json()["person"][0]["_id"]

        client.put(f"/customers/{customer_id}", json={"name": "Acme", "person": [{"name": "Jane"}]}, headers=headers)

        after = client.get(f"/customers/{customer_id}", headers=headers).json()
        assert after["person"][0]["_id"] != before
        assert after["contact"] is None

    def test_delete_customer(self, client, headers, customer_id):
        assert client.delete(f"/customers/{customer_id}", headers=headers).status_code == 200
        assert client.get(f"/customers/{customer_id}", headers=headers).status_code == 404
