import threading
import unittest
from unittest import mock

import requests

from eventsync.client import EventClient
from eventsync.errors import AuthenticationRequired
from eventsync.models import AppConfig
from eventsync.saved_items import (
    STATE_SAVE_PENDING,
    STATE_SAVED,
    STATE_UNSAVED,
    saved_set_key,
)

from fake_api import FakeEventServer, make_response


class SavedItemsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.server = FakeEventServer()
        self.client = EventClient(AppConfig(), http_session=self.server.session)
        self.synchronizer = self.client.saved_items

    def login(self) -> None:
        self.client.session.login("ada", "secret")

    def test_toggle_round_trip_for_events_and_places(self) -> None:
        self.login()
        for kind in ("event", "place"):
            self.assertEqual(self.synchronizer.saved_items(kind), [])

            first = self.synchronizer.toggle_save(7, kind)
            self.assertTrue(first.ok)
            self.assertEqual(first.action, "save")
            self.assertTrue(self.synchronizer.is_item_saved(7, kind))

            second = self.synchronizer.toggle_save(7, kind)
            self.assertTrue(second.ok)
            self.assertEqual(second.action, "unsave")
            self.assertFalse(self.synchronizer.is_item_saved(7, kind))

    def test_refresh_rereads_saved_list(self) -> None:
        self.login()
        self.assertEqual(self.synchronizer.saved_items("event"), [])
        self.server.saved["events"].append(9)

        self.assertEqual(self.synchronizer.saved_items("event"), [])
        self.assertEqual([item["id"] for item in self.synchronizer.refresh("event")], [9])
        self.assertEqual(self.server.session.count("GET", "/api/user/saved-events"), 2)

    def test_toggle_while_unauthenticated_sends_nothing(self) -> None:
        with self.assertRaises(AuthenticationRequired):
            self.synchronizer.toggle_save(42, "event")
        with self.assertRaises(AuthenticationRequired):
            self.synchronizer.unsave(42, "place")

        self.assertEqual(self.server.session.mutations(), [])
        self.assertEqual(self.client.notifier.last().title, "Login required")
        self.assertEqual(self.synchronizer.saved_items("event"), [])

    def test_save_success_invalidates_saved_events_and_refetches(self) -> None:
        self.login()
        self.assertEqual(self.synchronizer.saved_items("event"), [])
        self.assertEqual(self.server.session.count("GET", "/api/user/saved-events"), 1)

        with mock.patch.object(self.client.cache, "invalidate", wraps=self.client.cache.invalidate) as spy:
            result = self.synchronizer.save(42, "event")

        self.assertTrue(result.ok)
        spy.assert_called_once_with(saved_set_key("event"), refetch=True)
        self.assertEqual(self.server.session.count("GET", "/api/user/saved-events"), 2)
        self.assertTrue(self.synchronizer.is_item_saved(42, "event"))
        self.assertEqual(self.client.notifier.last().description, "Event added to saved items")

    def test_save_only_invalidates_its_own_kind(self) -> None:
        self.login()
        self.synchronizer.saved_items("event")
        self.synchronizer.saved_items("place")

        self.synchronizer.save(9, "place")

        self.assertEqual(self.server.session.count("GET", "/api/user/saved-events"), 1)
        self.assertEqual(self.server.session.count("GET", "/api/user/saved-places"), 2)
        self.assertFalse(self.client.cache.is_stale(saved_set_key("event")))

    def test_server_error_leaves_state_and_cache_untouched(self) -> None:
        self.login()
        self.synchronizer.saved_items("event")
        self.server.fail[("POST", "/api/events/42/save")] = 500

        with mock.patch.object(self.client.cache, "invalidate") as spy:
            result = self.synchronizer.save(42, "event")

        self.assertFalse(result.ok)
        self.assertEqual(result.error, "save_failed")
        spy.assert_not_called()
        self.assertFalse(self.synchronizer.is_item_saved(42, "event"))
        notification = self.client.notifier.last()
        self.assertEqual(notification.variant, "destructive")
        self.assertIn("500", notification.description)

    def test_network_failure_on_unsave_is_recovered(self) -> None:
        self.login()
        self.server.saved["places"] = [5]
        self.synchronizer.saved_items("place")

        def offline(*_args: object) -> None:
            raise requests.ConnectionError("connection reset")

        self.server.session.route("DELETE", "/api/places/5/save", offline)

        result = self.synchronizer.toggle_save(5, "place")

        self.assertFalse(result.ok)
        self.assertEqual(result.action, "unsave")
        self.assertEqual(result.error, "unsave_failed")
        self.assertTrue(self.synchronizer.is_item_saved(5, "place"))
        self.assertFalse(self.synchronizer.is_pending(5, "place"))

    def test_is_item_saved_reads_cache_only(self) -> None:
        self.login()
        self.server.saved["events"] = [1, 2]
        self.assertFalse(self.synchronizer.is_item_saved(1, "event"))
        self.assertEqual(self.server.session.count("GET", "/api/user/saved-events"), 0)

        self.synchronizer.saved_items("event")
        self.assertTrue(self.synchronizer.is_item_saved(1, "event"))
        self.assertFalse(self.synchronizer.is_item_saved(3, "event"))

    def test_second_mutation_is_skipped_while_first_in_flight(self) -> None:
        self.login()
        self.synchronizer.saved_items("event")
        entered = threading.Event()
        release = threading.Event()

        def slow_save(*_args: object):
            entered.set()
            release.wait(timeout=5)
            self.server.saved["events"].append(11)
            return make_response(200, {"message": "ok"})

        self.server.session.route("POST", "/api/events/11/save", slow_save)
        results = []
        worker = threading.Thread(target=lambda: results.append(self.synchronizer.save(11, "event")))
        worker.start()
        self.assertTrue(entered.wait(timeout=5))

        self.assertEqual(self.synchronizer.item_state(11, "event"), STATE_SAVE_PENDING)
        skipped = self.synchronizer.toggle_save(11, "event")
        release.set()
        worker.join(timeout=5)

        self.assertTrue(skipped.skipped)
        self.assertFalse(skipped.ok)
        self.assertEqual(self.server.session.count("POST", "/api/events/11/save"), 1)
        self.assertTrue(results[0].ok)
        self.assertEqual(self.synchronizer.item_state(11, "event"), STATE_SAVED)

    def test_item_state_and_unknown_kind(self) -> None:
        self.login()
        self.synchronizer.saved_items("events")
        self.assertEqual(self.synchronizer.item_state(3, "event"), STATE_UNSAVED)
        with self.assertRaises(ValueError):
            self.synchronizer.save(3, "concert")

    def test_logout_drops_saved_sets(self) -> None:
        self.login()
        self.server.saved["events"] = [4]
        self.synchronizer.saved_items("event")
        self.assertTrue(self.synchronizer.is_item_saved(4, "event"))

        self.client.session.logout()

        self.assertNotIn(saved_set_key("event"), self.client.cache)
        self.assertFalse(self.synchronizer.is_item_saved(4, "event"))


if __name__ == "__main__":
    unittest.main()
