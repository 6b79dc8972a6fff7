"""
Farm tenancy and farm-role gate tests
"""
from farmhub.models import FarmMembership, FarmRole

TRANSACTION = {"type": "income", "category": "milk", "amount": "75.00", "transactionDate": "2024-04-01"}


class TestFarmRoleGate:
    def test_viewer_cannot_record_transactions(self, client, make_user, make_farm, add_member, auth_headers):
        """
        Test: VIEWER posts to the WORKER-and-above finance route
        Expected: 403 with required [OWNER, MANAGER, WORKER] and current VIEWER
        """
        owner = make_user("owner@example.com")
        viewer = make_user("viewer@example.com")
        farm = make_farm(owner)
        add_member(farm, viewer, FarmRole.VIEWER)

        response = client.post("/api/finance/transactions", json=TRANSACTION, headers=auth_headers(viewer, farm=farm))

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "INSUFFICIENT_PERMISSIONS"
        assert body["requirement"] == "farm_role"
        assert body["required"] == ["OWNER", "MANAGER", "WORKER"]
        assert body["current"] == "VIEWER"

    def test_viewer_can_read(self, client, make_user, make_farm, add_member, auth_headers):
        owner = make_user("owner@example.com")
        viewer = make_user("viewer@example.com")
        farm = make_farm(owner)
        add_member(farm, viewer, FarmRole.VIEWER)

        response = client.get("/api/finance/transactions", headers=auth_headers(viewer, farm=farm))
        assert response.status_code == 200

    def test_authorization_runs_before_validation(self, client, make_user, make_farm, add_member, auth_headers):
        owner = make_user("owner@example.com")
        viewer = make_user("viewer@example.com")
        farm = make_farm(owner)
        add_member(farm, viewer, FarmRole.VIEWER)

        response = client.post("/api/finance/transactions", json={}, headers=auth_headers(viewer, farm=farm))
        assert response.status_code == 403


class TestTransactionOwnership:
    def test_worker_deletes_only_own_entries(self, client, make_user, make_farm, add_member, auth_headers):
        owner = make_user("owner@example.com")
        worker = make_user("worker@example.com")
        other = make_user("other@example.com")
        farm = make_farm(owner)
        add_member(farm, worker, FarmRole.WORKER)
        add_member(farm, other, FarmRole.WORKER)

        created = client.post("/api/finance/transactions", json=TRANSACTION, headers=auth_headers(worker, farm=farm))
        txn_id = created.json()["data"]["id"]

        denied = client.delete(f"/api/finance/transactions/{txn_id}", headers=auth_headers(other, farm=farm))
        assert denied.status_code == 403
        assert denied.json()["requirement"] == "ownership_or_role"

        allowed = client.delete(f"/api/finance/transactions/{txn_id}", headers=auth_headers(worker, farm=farm))
        assert allowed.status_code == 200

    def test_owner_deletes_any_entry(self, client, make_user, make_farm, add_member, auth_headers):
        owner = make_user("owner@example.com")
        worker = make_user("worker@example.com")
        farm = make_farm(owner)
        add_member(farm, worker, FarmRole.WORKER)

        created = client.post("/api/finance/transactions", json=TRANSACTION, headers=auth_headers(worker, farm=farm))
        txn_id = created.json()["data"]["id"]

        response = client.delete(f"/api/finance/transactions/{txn_id}", headers=auth_headers(owner, farm=farm))
        assert response.status_code == 200

        missing = client.delete(f"/api/finance/transactions/{txn_id}", headers=auth_headers(owner, farm=farm))
        assert missing.status_code == 404


class TestFarms:
    def test_create_farm_makes_caller_owner(self, client, make_user, auth_headers):
        user = make_user("farmer@example.com")
        headers = auth_headers(user)

        created = client.post("/api/farms", json={"name": "Hill Farm", "location": "Valley"}, headers=headers)
        assert created.status_code == 201
        assert created.json()["data"]["role"] == "OWNER"

        farms = client.get("/api/farms", headers=headers).json()["data"]
        assert [f["name"] for f in farms] == ["Hill Farm"]

        current = client.get("/api/farms/current", headers=headers).json()["data"]
        assert current["farmRole"] == "OWNER"
        assert current["source"] == "membership"

    def test_create_farm_requires_verified_email(self, client, make_user, auth_headers):
        user = make_user("unverified@example.com", email_verified=False)

        response = client.post("/api/farms", json={"name": "Hill Farm"}, headers=auth_headers(user))

        assert response.status_code == 403
        assert response.json()["requirement"] == "verified_email"

    def test_last_owner_cannot_be_demoted(self, client, make_user, make_farm, auth_headers):
        owner = make_user("owner@example.com")
        farm = make_farm(owner)

        response = client.patch(
            f"/api/farms/current/members/{owner.id}/role",
            json={"role": "MANAGER"},
            headers=auth_headers(owner, farm=farm),
        )
        assert response.status_code == 409

    def test_owner_changes_member_role(self, client, make_user, make_farm, add_member, auth_headers):
        owner = make_user("owner@example.com")
        worker = make_user("worker@example.com")
        farm = make_farm(owner)
        add_member(farm, worker, FarmRole.WORKER)

        response = client.patch(
            f"/api/farms/current/members/{worker.id}/role",
            json={"role": "MANAGER"},
            headers=auth_headers(owner, farm=farm),
        )
        assert response.status_code == 200
        assert response.json()["data"]["role"] == "MANAGER"

    def test_manager_cannot_remove_owner(self, client, make_user, make_farm, add_member, auth_headers):
        owner = make_user("owner@example.com")
        manager = make_user("manager@example.com")
        farm = make_farm(owner)
        add_member(farm, manager, FarmRole.MANAGER)

        response = client.delete(
            f"/api/farms/current/members/{owner.id}", headers=auth_headers(manager, farm=farm)
        )
        assert response.status_code == 403

    def test_removed_member_loses_access(self, client, db, make_user, make_farm, add_member, auth_headers):
        owner = make_user("owner@example.com")
        worker = make_user("worker@example.com")
        farm = make_farm(owner)
        add_member(farm, worker, FarmRole.WORKER)

        removed = client.delete(f"/api/farms/current/members/{worker.id}", headers=auth_headers(owner, farm=farm))
        assert removed.status_code == 200

        db.expire_all()
        membership = db.query(FarmMembership).filter(FarmMembership.user_id == worker.id).one()
        assert membership.is_active is False

        response = client.get("/api/farms/current", headers=auth_headers(worker, farm=farm))
        assert response.status_code == 403
        assert response.json()["error"] == "NO_FARM_ROLE_ASSIGNED"

    def test_members_listing(self, client, make_user, make_farm, add_member, auth_headers):
        owner = make_user("owner@example.com")
        worker = make_user("worker@example.com")
        farm = make_farm(owner)
        add_member(farm, worker, FarmRole.WORKER)

        members = client.get("/api/farms/current/members", headers=auth_headers(worker, farm=farm)).json()["data"]
        assert {m["email"]: m["role"] for m in members} == {
            "owner@example.com": "OWNER",
            "worker@example.com": "WORKER",
        }
