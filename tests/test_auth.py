import unittest

from djconnect.auth import get_or_create_telegram_user, verify_init_data
from djconnect.models import User

from tests.support import FakeWorld, sign_init_data


class VerifyInitDataTest(unittest.TestCase):
    def test_signed_by_either_bot(self):
        user = verify_init_data(sign_init_data("1001", username="listener"))
        self.assertEqual(user["id"], 1001)
        self.assertEqual(user["username"], "listener")

        dj = verify_init_data(sign_init_data("2001", bot_token="222:dj-bot-token"))
        self.assertEqual(dj["id"], 2001)

    def test_wrong_token_or_tampering(self):
        self.assertIsNone(verify_init_data(sign_init_data("1001", bot_token="999:unknown")))

        tampered = sign_init_data("1001").replace("Listener", "Mallory")
        self.assertIsNone(verify_init_data(tampered))

    def test_missing_hash(self):
        self.assertIsNone(verify_init_data("auth_date=1&user=%7B%22id%22%3A1%7D"))

    def test_explicit_tokens(self):
        init_data = sign_init_data("1001", bot_token="333:custom")

        self.assertIsNotNone(verify_init_data(init_data, bot_tokens=["333:custom"]))
        self.assertIsNone(verify_init_data(init_data, bot_tokens=[]))


class TelegramUserTest(unittest.TestCase):
    def setUp(self):
        self.world = FakeWorld()

    def tearDown(self):
        self.world.close()

    def test_creates_once(self):
        first = get_or_create_telegram_user(self.world.db, 4242, "Ann", "ann")
        second = get_or_create_telegram_user(self.world.db, "4242", "Someone else")

        self.assertEqual(first.id, second.id)
        self.assertEqual(first.name, "Ann")
        self.assertEqual(first.email, "ann@telegram.com")
        self.assertEqual(self.world.db.query(User).count(), 1)


if __name__ == "__main__":
    unittest.main()
