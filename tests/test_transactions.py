import asyncio
import unittest
from decimal import Decimal

from core.transactions import TransactionWorkflow, parse_amount
from fakes import FakeApi, make_tx, make_wallet


class TestParseAmount(unittest.TestCase):

    def test_parse(self):
        self.assertEqual(parse_amount("0.5"), Decimal("0.5"))
        self.assertEqual(parse_amount(" 2 "), Decimal("2"))
        self.assertEqual(parse_amount(0.1), Decimal("0.1"))
        self.assertIsNone(parse_amount("abc"))
        self.assertIsNone(parse_amount("NaN"))
        self.assertIsNone(parse_amount("Infinity"))
        self.assertIsNone(parse_amount(True))
        self.assertIsNone(parse_amount(None))


class TestDraft(unittest.TestCase):
    def setUp(self):
        self.flow = TransactionWorkflow(FakeApi())

    def test_needs_a_wallet(self):
        self.assertEqual(self.flow.blocking_reason(), "Select a wallet first")

    def test_amount_bounded_by_balance(self):
        self.flow.begin(make_wallet(balance="0.5"))
        self.flow.update_draft(to_address="bc1qdest", amount="0.5")
        self.assertTrue(self.flow.can_submit)

        self.flow.update_draft(amount="0.50000001")
        self.assertEqual(self.flow.blocking_reason(), "Amount exceeds wallet balance")

    def test_zero_and_garbage_amounts(self):
        self.flow.begin(make_wallet())
        self.flow.update_draft(to_address="bc1qdest", amount="0")
        self.assertEqual(self.flow.blocking_reason(), "Amount must be greater than 0")
        self.flow.update_draft(amount="lots")
        self.assertFalse(self.flow.can_submit)

    def test_address_required(self):
        self.flow.begin(make_wallet())
        self.flow.update_draft(to_address="   ", amount="0.1")
        self.assertEqual(self.flow.blocking_reason(), "Recipient address is required")

    def test_begin_resets_draft(self):
        self.flow.begin(make_wallet(1))
        self.flow.update_draft(to_address="bc1qdest", amount="0.1", memo="rent")
        self.flow.begin(make_wallet(2))
        self.assertEqual(self.flow.draft.to_address, "")
        self.assertIsNone(self.flow.draft.amount)


class TestSubmit(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.sent = []
        self.api  = FakeApi(send_transaction=lambda req: make_tx(9, amount=str(req.amount)))
        self.flow = TransactionWorkflow(self.api, on_sent=self.sent.append)
        self.flow.begin(make_wallet(4, balance="1"))
        self.flow.update_draft(to_address="bc1qdest", amount="0.25", memo="  ")

    async def test_success(self):
        tx = await self.flow.submit()
        self.assertEqual(tx.tx_hash, "hash9")
        self.assertEqual(self.flow.confirmation, "Transaction sent successfully! TX Hash: hash9")
        self.assertEqual(self.flow.draft.to_address, "")
        self.assertEqual(self.sent, [tx])

        (request,) = self.api.calls_to("send_transaction")[0]
        self.assertEqual(request.wallet_id, 4)
        self.assertEqual(request.amount, Decimal("0.25"))
        self.assertIsNone(request.memo)

    async def test_server_rejection_keeps_draft(self):
        self.api.fail("send_transaction", "Insufficient balance", status=400)
        self.assertIsNone(await self.flow.submit())
        self.assertEqual(self.flow.error, "Insufficient balance")
        self.assertEqual(self.flow.draft.amount, Decimal("0.25"))
        self.assertFalse(self.flow.submitting)
        self.assertEqual(self.sent, [])

    async def test_blocked_draft_never_reaches_server(self):
        self.flow.update_draft(amount="5")
        self.assertIsNone(await self.flow.submit())
        self.assertEqual(self.flow.error, "Amount exceeds wallet balance")
        self.assertEqual(self.api.calls, [])


class TestHistory(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        txs       = [make_tx(1, minutes=0), make_tx(2, minutes=30), make_tx(3, minutes=10)]
        self.api  = FakeApi(get_wallet_transactions=lambda wid: txs,
                            get_user_transactions=lambda uid: txs)
        self.flow = TransactionWorkflow(self.api)

    async def test_newest_first(self):
        self.assertTrue(await self.flow.load_history(wallet_id=4))
        self.assertEqual([t.id for t in self.flow.history], [2, 3, 1])
        self.assertEqual(self.api.calls_to("get_wallet_transactions"), [(4,)])

    async def test_user_scope(self):
        await self.flow.load_history(user_id=7)
        self.assertEqual(self.api.calls_to("get_user_transactions"), [(7,)])

    async def test_exactly_one_scope(self):
        with self.assertRaises(ValueError):
            await self.flow.load_history()
        with self.assertRaises(ValueError):
            await self.flow.load_history(wallet_id=1, user_id=2)

    async def test_failure_is_separate_from_send_error(self):
        self.api.fail("get_user_transactions", "Server error")
        self.assertFalse(await self.flow.load_history(user_id=7))
        self.assertEqual(self.flow.history_error, "Failed to load transactions: Server error")
        self.assertIsNone(self.flow.error)

    async def test_stale_history_is_dropped(self):
        self.api.responses["get_wallet_transactions"] = lambda wid: [make_tx(1)]
        self.api.responses["get_user_transactions"]   = lambda uid: [make_tx(2, minutes=5),
                                                                     make_tx(3)]
        # 1. Wallet history held in flight
        gate  = self.api.hold("get_wallet_transactions")
        first = asyncio.create_task(self.flow.load_history(wallet_id=1))
        await asyncio.sleep(0)

        # 2. User history issued later finishes first
        self.assertTrue(await self.flow.load_history(user_id=7))

        # 3. The older wallet response lands and is dropped
        gate.set()
        self.assertFalse(await first)
        self.assertEqual([t.id for t in self.flow.history], [2, 3])
        self.assertFalse(self.flow.history_loading)

    async def test_stale_history_failure_is_dropped(self):
        self.api.fail("get_wallet_transactions", "Server error")
        gate  = self.api.hold("get_wallet_transactions")
        first = asyncio.create_task(self.flow.load_history(wallet_id=1))
        await asyncio.sleep(0)

        self.assertTrue(await self.flow.load_history(user_id=7))
        gate.set()
        self.assertFalse(await first)
        self.assertIsNone(self.flow.history_error)
        self.assertEqual(len(self.flow.history), 3)


if __name__ == "__main__":
    unittest.main()
