import unittest
from decimal import Decimal

from fastapi.testclient import TestClient

from core.models import CryptoCurrency
from devserver import DevStore, create_app

FAST = 1000


def registration(username, **kw):
    body = {"username": username, "password": "password1", "email": f"{username}@example.com",
            "firstName": username.title(), "lastName": "Tester"}
    body.update(kw)
    return body


class TestDevServer(unittest.TestCase):
    def setUp(self):
        self.store  = DevStore(hash_iterations=FAST)
        self.client = TestClient(create_app(self.store, seed=False))

    def register(self, username, **kw):
        resp = self.client.post("/api/users/register", json=registration(username, **kw))
        self.assertEqual(resp.status_code, 201)
        return resp.json()["user"]

    # ── Auth ──────────────────────────────────────────────────────────────────

    def test_register_and_login(self):
        user = self.register("alice")
        self.assertEqual(user["firstName"], "Alice")

        resp = self.client.post("/api/users/login",
                                json={"username": "alice", "password": "password1"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["user"]["id"], user["id"])
        self.assertIsNone(body["admin"])

    def test_bad_credentials(self):
        self.register("alice")
        resp = self.client.post("/api/users/login",
                                json={"username": "alice", "password": "nope"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"message": "Invalid username or password",
                                       "user": None, "admin": None, "success": False})

    def test_duplicate_username(self):
        self.register("alice")
        resp = self.client.post("/api/users/register",
                                json=registration("alice", email="other@example.com"))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Username already exists")

    def test_validation_error_message(self):
        resp = self.client.post("/api/users/register", json=registration("   "))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Username is required")

    def test_admin_account(self):
        resp = self.client.post("/api/admin/register",
                                json=registration("root", role="SUPER_ADMIN"))
        admin = resp.json()["admin"]
        self.assertEqual(admin["role"], "SUPER_ADMIN")

        resp = self.client.put(f"/api/admin/{admin['id']}",
                               json={"email": "boss@example.com", "firstName": "Big",
                                     "lastName": "Boss"})
        self.assertEqual(resp.json()["email"], "boss@example.com")

        resp = self.client.post(f"/api/admin/{admin['id']}/change-password",
                                json={"currentPassword": "wrong", "newPassword": "password2"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.text, "Invalid current password")

        resp = self.client.post(f"/api/admin/{admin['id']}/change-password",
                                json={"currentPassword": "password1", "newPassword": "password2"})
        self.assertEqual(resp.text, "Password changed successfully")
        resp = self.client.post("/api/admin/login",
                                json={"username": "root", "password": "password2"})
        self.assertIsNotNone(resp.json()["admin"]["lastLogin"])

    # ── Wallets & transactions ────────────────────────────────────────────────

    def test_wallet_lifecycle(self):
        user = self.register("alice")
        resp = self.client.post(f"/api/wallets/user/{user['id']}", json={"currency": "BITCOIN"})
        self.assertEqual(resp.status_code, 201)
        wallet = resp.json()
        self.assertTrue(wallet["address"].startswith("bc1q"))

        resp = self.client.delete(f"/api/wallets/{wallet['id']}")
        self.assertEqual(resp.status_code, 204)
        wallets = self.client.get(f"/api/wallets/user/{user['id']}").json()
        self.assertEqual([w["active"] for w in wallets], [False])

    def test_send_between_wallets(self):
        alice = self.register("alice")
        bob   = self.register("bob")
        src   = self.store.create_wallet(alice["id"], CryptoCurrency.BITCOIN, Decimal("1"))
        dst   = self.store.create_wallet(bob["id"], CryptoCurrency.BITCOIN)

        resp = self.client.post("/api/transactions/send", json={
            "walletId": src.id, "toAddress": dst.address, "amount": "0.4", "memo": "lunch"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["type"], "SEND")
        self.assertEqual(resp.json()["status"], "PENDING")

        self.assertEqual(self.store.wallets[src.id].balance, Decimal("0.6"))
        self.assertEqual(self.store.wallets[dst.id].balance, Decimal("0.4"))
        received = self.client.get(f"/api/transactions/user/{bob['id']}").json()
        self.assertEqual([t["type"] for t in received], ["RECEIVE"])

        self.client.post(f"/api/wallets/{src.id}/refresh-balance")
        history = self.client.get(f"/api/transactions/wallet/{src.id}").json()
        self.assertEqual(history[0]["status"], "CONFIRMED")

    def test_insufficient_balance(self):
        alice = self.register("alice")
        src   = self.store.create_wallet(alice["id"], CryptoCurrency.BITCOIN, Decimal("0.5"))
        resp  = self.client.post("/api/transactions/send", json={
            "walletId": src.id, "toAddress": "bc1qexternal", "amount": "0.50000001"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Insufficient balance")
        self.assertEqual(self.store.wallets[src.id].balance, Decimal("0.5"))

    # ── Admin dashboard ───────────────────────────────────────────────────────

    def test_listing_filters_and_pages(self):
        for i in range(12):
            self.register(f"user{i:02d}")
        self.client.put("/api/admin/dashboard/users/1/toggle-status")

        page = self.client.get("/api/admin/dashboard/users",
                               params={"page": 1, "size": 5, "sortBy": "username",
                                       "sortDir": "asc", "active": "true"}).json()
        self.assertEqual(page["totalElements"], 11)
        self.assertEqual(page["totalPages"], 3)
        self.assertEqual([u["username"] for u in page["content"]],
                         ["user06", "user07", "user08", "user09", "user10"])
        self.assertFalse(page["first"])
        self.assertFalse(page["last"])

        beyond = self.client.get("/api/admin/dashboard/users",
                                 params={"page": 9, "size": 5}).json()
        self.assertEqual(beyond["content"], [])
        self.assertEqual(beyond["number"], 9)

    def test_search(self):
        self.register("alice")
        self.register("bob", lastName="Alison")
        self.register("carol")
        page = self.client.get("/api/admin/dashboard/users/search",
                               params={"query": "ALI", "sortBy": "id", "sortDir": "asc"}).json()
        self.assertEqual([u["username"] for u in page["content"]], ["alice", "bob"])

    def test_stats(self):
        alice = self.register("alice")
        self.store.create_wallet(alice["id"], CryptoCurrency.USDT_TRC20)
        stats = self.client.get("/api/admin/dashboard/stats").json()
        self.assertEqual(stats["totalUsers"], 1)
        self.assertEqual(stats["usdtWallets"], 1)
        self.assertEqual(stats["usersRegisteredToday"], 1)
        self.assertEqual(stats["totalTransactions"], 0)

    def test_unknown_resource(self):
        resp = self.client.get("/api/admin/dashboard/things")
        self.assertEqual(resp.status_code, 404)


if __name__ == "__main__":
    unittest.main()
