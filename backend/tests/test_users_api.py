import models


class TestMe:
    def test_requires_session(self, client, db):
        assert client.get("/users/me").status_code == 401

    def test_get_profile(self, cashier_client):
        response = cashier_client.get("/users/me")

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "alma"
        assert body["role"] == "CASHIER"
        assert set(body) >= {"id", "email", "profileImage", "theme", "fontSize"}

    def test_update_profile_fields(self, cashier_client):
        response = cashier_client.put(
            "/users/me",
            json={"username": "alma_k", "profileImage": "/img/alma.png", "theme": "dark", "fontSize": "large"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "alma_k"
        assert body["profileImage"] == "/img/alma.png"
        assert body["theme"] == "dark"
        assert body["fontSize"] == "large"

    def test_username_must_be_unique(self, cashier_client, make_user):
        make_user("budi")

        response = cashier_client.put("/users/me", json={"username": "budi"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Username already taken"

    def test_cashier_cannot_change_own_role(self, cashier_client, db):
        response = cashier_client.put("/users/me", json={"role": "ADMIN", "theme": "dark"})

        assert response.status_code == 200
        assert response.json()["role"] == "CASHIER"
        assert response.json()["theme"] == "dark"
        db.expire_all()
        assert db.query(models.User).filter(models.User.username == "alma").one().role == "CASHIER"

    def test_admin_role_change_honoured(self, admin_client, make_user):
        make_user("kepala", role=models.Role.ADMIN.value)

        response = admin_client.put("/users/me", json={"role": "CASHIER"})

        assert response.status_code == 200
        assert response.json()["role"] == "CASHIER"

    def test_last_admin_cannot_demote_self(self, admin_client):
        response = admin_client.put("/users/me", json={"role": "CASHIER"})
        assert response.status_code == 400


class TestAdminUsers:
    def test_list_users_admin_only(self, admin_client, cashier_client):
        assert cashier_client.get("/admin/users").status_code == 403

        response = admin_client.get("/admin/users")
        assert response.status_code == 200
        assert {u["username"] for u in response.json()} == {"admin", "alma"}

    def test_list_users_requires_session(self, client, db):
        assert client.get("/admin/users").status_code == 401

    def test_update_role(self, admin_client, make_user):
        user = make_user("budi")

        response = admin_client.put(f"/admin/users/{user.id}", json={"role": "ADMIN"})

        assert response.status_code == 200
        assert response.json() == {"id": user.id, "username": "budi", "role": "ADMIN"}

    def test_update_role_validation(self, admin_client, make_user):
        user = make_user("budi")

        assert admin_client.put(f"/admin/users/{user.id}", json={}).status_code == 400
        assert admin_client.put(f"/admin/users/{user.id}", json={"role": "OWNER"}).status_code == 400
        assert admin_client.put("/admin/users/9999", json={"role": "ADMIN"}).status_code == 404

    def test_cashier_cannot_update_roles(self, cashier_client, make_user, db):
        user = make_user("budi")

        response = cashier_client.put(f"/admin/users/{user.id}", json={"role": "ADMIN"})

        assert response.status_code == 403
        db.expire_all()
        assert db.get(models.User, user.id).role == "CASHIER"

    def test_stale_role_claim_is_not_trusted(self, cashier_client, db):
        # Demoted or not, authorization follows the stored role
        user = db.query(models.User).filter(models.User.username == "alma").one()
        user.role = models.Role.ADMIN.value
        db.commit()
        assert cashier_client.get("/admin/users").status_code == 200

        user.role = models.Role.CASHIER.value
        db.commit()
        assert cashier_client.get("/admin/users").status_code == 403
