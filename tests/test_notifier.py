import unittest

from eventsync.notifier import VARIANT_DESTRUCTIVE, Notifier


class NotifierTests(unittest.TestCase):
    def test_recent_is_newest_first_and_bounded(self) -> None:
        notifier = Notifier(max_entries=2)
        notifier.success("first")
        notifier.success("second")
        notifier.error("third")

        recent = notifier.recent()
        self.assertEqual([item.description for item in recent], ["third", "second"])
        self.assertEqual(recent[0].variant, VARIANT_DESTRUCTIVE)
        self.assertEqual(recent[0].title, "Error")
        self.assertEqual(notifier.last().description, "third")

    def test_clear(self) -> None:
        notifier = Notifier()
        notifier.notify("Login required", "Please login to save items")
        notifier.clear()
        self.assertIsNone(notifier.last())
        self.assertEqual(notifier.recent(), [])


if __name__ == "__main__":
    unittest.main()
