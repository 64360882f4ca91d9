import unittest

from core.security import hash_password, verify_password

FAST = 1000


class TestPasswordHashing(unittest.TestCase):

    def test_hash_and_verify(self):
        stored = hash_password("correct horse", FAST)
        self.assertTrue(verify_password("correct horse", stored, FAST))
        self.assertFalse(verify_password("wrong horse", stored, FAST))

    def test_salt_differs_per_hash(self):
        self.assertNotEqual(hash_password("pw", FAST), hash_password("pw", FAST))

    def test_malformed_hash_never_verifies(self):
        self.assertFalse(verify_password("pw", "not-a-hash", FAST))
        self.assertFalse(verify_password("pw", "zz:zz", FAST))


if __name__ == "__main__":
    unittest.main()
