import io
import json
import unittest
import urllib.error
from decimal import Decimal
from unittest.mock import MagicMock, patch

from api_client import ApiClient, ApiError
from core.models import (
    ChangePasswordRequest, Credentials, CryptoCurrency, IdentityKind, SendTransactionRequest,
    User,
)

BASE = "http://wallet.test/api"


def response(body) -> MagicMock:
    """urlopen() result whose body is `body` (dict/list as JSON, str as text)."""
    raw = json.dumps(body).encode() if isinstance(body, (dict, list)) else body.encode()
    resp = MagicMock()
    resp.__enter__.return_value.read.return_value = raw
    return resp


def http_error(code, body=b"") -> urllib.error.HTTPError:
    return urllib.error.HTTPError(f"{BASE}/x", code, "Error", hdrs={}, fp=io.BytesIO(body))


class TestApiClient(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client  = ApiClient(BASE, timeout=5, verify_ssl=False)
        patcher      = patch("urllib.request.urlopen")
        self.urlopen = patcher.start()
        self.addCleanup(patcher.stop)

    def sent(self):
        return self.urlopen.call_args[0][0]

    async def test_login_posts_to_namespace(self):
        self.urlopen.return_value = response({
            "message": "Login successful", "success": True,
            "user": {"id": 7, "username": "alice", "email": "alice@example.com"},
        })
        resp = await self.client.login(IdentityKind.USER,
                                       Credentials(username="alice", password="pw"))
        self.assertEqual(resp.user.id, 7)
        req = self.sent()
        self.assertEqual(req.full_url, f"{BASE}/users/login")
        self.assertEqual(req.get_method(), "POST")
        self.assertEqual(json.loads(req.data), {"username": "alice", "password": "pw"})

    async def test_list_resource_query_string(self):
        self.urlopen.return_value = response({
            "content": [{"id": 1, "username": "a", "email": "a@example.com"}],
            "totalElements": 11, "totalPages": 2, "size": 10, "number": 1,
            "first": False, "last": True,
        })
        page = await self.client.list_resource("users", 1, 10, "createdAt", "desc",
                                               {"active": True, "currency": None})
        self.assertIsInstance(page.content[0], User)
        self.assertEqual(page.total_pages, 2)
        self.assertEqual(
            self.sent().full_url,
            f"{BASE}/admin/dashboard/users?page=1&size=10&sortBy=createdAt&sortDir=desc&active=true")

    async def test_send_transaction_body(self):
        self.urlopen.return_value = response({
            "id": 9, "txHash": "abc", "fromAddress": "bc1qfrom", "toAddress": "bc1qto",
            "amount": "0.5", "type": "SEND", "status": "PENDING",
            "createdAt": "2024-01-01T12:00:00",
        })
        tx = await self.client.send_transaction(SendTransactionRequest(
            wallet_id=4, to_address="bc1qto", amount=Decimal("0.5")))
        self.assertEqual(tx.tx_hash, "abc")
        self.assertEqual(json.loads(self.sent().data),
                         {"walletId": 4, "toAddress": "bc1qto", "amount": "0.5"})

    async def test_create_wallet(self):
        self.urlopen.return_value = response(
            {"id": 3, "address": "T123", "currency": "USDT_TRC20", "balance": 0, "active": True})
        wallet = await self.client.create_wallet(7, CryptoCurrency.USDT_TRC20)
        self.assertIs(wallet.currency, CryptoCurrency.USDT_TRC20)
        self.assertEqual(json.loads(self.sent().data), {"currency": "USDT_TRC20"})

    async def test_empty_body(self):
        self.urlopen.return_value = response("")
        self.assertIsNone(await self.client.deactivate_wallet(3))
        self.assertEqual(self.sent().get_method(), "DELETE")

    async def test_http_error_carries_server_message(self):
        self.urlopen.side_effect = http_error(400, b'{"message": "Insufficient balance"}')
        with self.assertRaises(ApiError) as ctx:
            await self.client.send_transaction(SendTransactionRequest(
                wallet_id=4, to_address="bc1qto", amount=Decimal("9")))
        self.assertEqual(str(ctx.exception), "Insufficient balance")
        self.assertEqual(ctx.exception.status, 400)

    async def test_http_error_without_body(self):
        self.urlopen.side_effect = http_error(503)
        with self.assertRaises(ApiError) as ctx:
            await self.client.get_system_stats()
        self.assertEqual(str(ctx.exception), "503 Error")

    async def test_unreachable_server(self):
        self.urlopen.side_effect = urllib.error.URLError("Connection refused")
        with self.assertRaises(ApiError) as ctx:
            await self.client.get_user_wallets(7)
        self.assertIsNone(ctx.exception.status)
        self.assertTrue(str(ctx.exception).startswith("Cannot connect to server"))

    async def test_malformed_response(self):
        self.urlopen.return_value = response({"totalUsers": "many"})
        with self.assertRaises(ApiError) as ctx:
            await self.client.get_system_stats()
        self.assertIn("Unexpected stats response", str(ctx.exception))

    async def test_change_password_plain_text(self):
        self.urlopen.return_value = response("Password changed successfully")
        text = await self.client.change_admin_password(
            1, ChangePasswordRequest(current_password="old", new_password="new-password"))
        self.assertEqual(text, "Password changed successfully")

    async def test_ping(self):
        self.urlopen.side_effect = http_error(401)
        self.assertTrue(await self.client.ping())
        self.urlopen.side_effect = urllib.error.URLError("Connection refused")
        self.assertFalse(await self.client.ping())


if __name__ == "__main__":
    unittest.main()
