# =============================================================================
# tests/unit/test_sync.py
# Unit Tests for OfflineSync
# =============================================================================

import pytest
import requests
from unittest.mock import MagicMock

from conftest import make_response
from fulltech_core.offline.sync import OfflineSync


ACTIVITY = "/api/customer/activity"


def sent_tags(notifier):
    return [call.args[0].tag for call in notifier.notify.call_args_list]


class TestMakeOfflineRequest:
    """Test the unified write path"""

    def test_offline_request_is_queued_without_network(self, sync, connection, session):
        """Offline requests are queued without the network"""
        connection.set_online(False)
        fallback = MagicMock()

        result = sync.make_offline_request(ACTIVITY, "POST", body={"activityType": "like"}, fallback=fallback)

        assert not result.success
        assert result.offline
        assert session.calls == []
        fallback.assert_called_once()
        assert [a.id for a in sync.pending_actions] == [result.action_id]
        assert sync.pending_actions[0].type == "api-request"

    def test_online_success_returns_data(self, sync, session):
        """Online success returns the decoded data"""
        session.add("POST", ACTIVITY, make_response(201, json_body={"id": 7}))

        result = sync.make_offline_request(ACTIVITY, "POST", body={"activityType": "view"})

        assert result.success
        assert result.data == {"id": 7}
        assert sync.pending_actions == []

    def test_text_body_is_returned_as_text(self, sync, session):
        """Non-JSON bodies are returned as text"""
        session.add("GET", "/api/ping", make_response(body="pong"))

        result = sync.make_offline_request("/api/ping")

        assert result.data == "pong"

    def test_online_failure_is_queued_as_failed_request(self, sync, session, cache_manager):
        """Online failures are queued as failed requests"""
        session.add("POST", ACTIVITY, make_response(500))

        result = sync.make_offline_request(ACTIVITY, "POST", body={}, action_id="A1")

        assert not result.success
        assert not result.offline
        assert "500" in result.error
        queued = cache_manager.get_offline_queue()
        assert [a.id for a in queued] == ["A1"]
        assert queued[0].type == "failed-request"
        # Queued while online, so one replay already happened
        assert queued[0].retries == 1

    def test_network_exception_is_queued(self, sync, session, cache_manager):
        """Network exceptions are queued"""
        session.add("POST", ACTIVITY, requests.ConnectionError("reset"))

        result = sync.make_offline_request(ACTIVITY, "POST", body={})

        assert result.error
        assert len(cache_manager.get_offline_queue()) == 1


    def test_redirect_is_queued_as_failed_request(self, sync, session, cache_manager):
        """A 3xx answer is not a success"""
        session.add("POST", ACTIVITY, make_response(302, headers={"Location": "/login"}))

        result = sync.make_offline_request(ACTIVITY, "POST", body={})

        assert not result.success
        assert cache_manager.get_offline_queue()[0].type == "failed-request"

    def test_queued_action_uses_cache_clock(self, sync, connection, cache_manager, clock):
        """Queued actions are stamped with the injected clock"""
        connection.set_online(False)

        action = sync.add_offline_action("api-request", ACTIVITY)

        assert action.timestamp == clock.now
        assert cache_manager.get_offline_queue()[0].timestamp == clock.now


class TestSyncPendingActions:
    """Test queue replay orchestration"""

    def test_reconnect_replays_queue(self, sync, connection, session, notifier):
        """Reconnecting replays the queue"""
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY, body={"activityType": "like"})
        session.add("POST", ACTIVITY, make_response(200))

        connection.set_online(True)

        assert sync.pending_actions == []
        assert sent_tags(notifier) == ["sync-success"]
        assert notifier.notify.call_args.args[0].body == "Datos sincronizados correctamente"

    def test_sync_while_offline_is_noop(self, sync, connection):
        """Sync while offline does nothing"""
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)

        assert sync.sync_pending_actions() is None
        assert len(sync.pending_actions) == 1

    def test_empty_queue_returns_none(self, sync, notifier):
        """An empty queue returns None"""
        assert sync.sync_pending_actions() is None
        notifier.notify.assert_not_called()

    def test_sync_skipped_while_another_pass_runs(self, sync, connection, session):
        """Sync is skipped while another pass runs"""
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)
        session.add("POST", ACTIVITY, make_response(200))

        sync._sync_lock.acquire()
        try:
            assert sync.sync_in_progress
            connection.set_online(True)
            assert sync.sync_pending_actions() is None
        finally:
            sync._sync_lock.release()

        assert not sync.sync_in_progress
        assert session.calls == []
        assert len(sync.sync_pending_actions().succeeded) == 1

    def test_lease_held_elsewhere_blocks_replay(self, sync, connection, cache_manager, session, clock, config):
        """A lease held elsewhere blocks replay"""
        cache_manager.store.acquire_lease(OfflineSync.SYNC_LEASE, "other-tab", config.sync_lease_seconds)
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)
        session.add("POST", ACTIVITY, make_response(200))

        connection.set_online(True)
        assert len(sync.pending_actions) == 1
        assert session.calls == []

        clock.advance(config.sync_lease_seconds + 1)
        report = sync.sync_pending_actions()

        assert len(report.succeeded) == 1
        assert sync.pending_actions == []

    def test_lease_is_released_after_pass(self, sync, cache_manager, connection, session):
        """The lease is released after a pass"""
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)
        session.add("POST", ACTIVITY, make_response(200))
        connection.set_online(True)

        assert cache_manager.store.acquire_lease(OfflineSync.SYNC_LEASE, "other-tab", 60)

    def test_dropped_actions_raise_failure_notification(self, sync, connection, session, notifier, config):
        """Dropped actions raise a failure notification"""
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)
        session.add("POST", ACTIVITY, make_response(503))
        connection.set_online(True)

        for _ in range(config.max_retries - 1):
            sync.sync_pending_actions()

        assert sync.pending_actions == []
        assert sent_tags(notifier)[-1] == "sync-failed"
        assert notifier.notify.call_args.args[0].body == "1 acciones no se pudieron sincronizar"

    def test_retried_actions_raise_pending_notification(self, sync, connection, session, notifier):
        """A pass where every replay failed should still notify the user"""
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)
        session.add("POST", ACTIVITY, make_response(503))

        connection.set_online(True)

        assert len(sync.pending_actions) == 1
        assert sent_tags(notifier) == ["sync-failed"]
        assert notifier.notify.call_args.args[0].body == "1 acciones pendientes se reintentarán"

    def test_redirect_counts_as_failed_replay(self, sync, connection, session):
        """Only 2xx answers remove an action from the queue"""
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)
        session.add("POST", ACTIVITY, make_response(302, headers={"Location": "/login"}))

        connection.set_online(True)

        assert sync.pending_actions[0].retries == 1

    def test_failing_notifier_does_not_break_sync(self, sync, connection, session, notifier):
        """A failing notifier should not break sync"""
        notifier.notify.side_effect = RuntimeError("toast failed")
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)
        session.add("POST", ACTIVITY, make_response(200))

        connection.set_online(True)

        assert sync.pending_actions == []

    def test_report_listeners_receive_reports(self, sync, connection, session):
        """Report listeners receive replay reports"""
        reports = []
        sync.add_report_listener(reports.append)
        connection.set_online(False)
        action = sync.add_offline_action("api-request", ACTIVITY)
        session.add("POST", ACTIVITY, make_response(200))

        connection.set_online(True)

        assert reports[0].succeeded == [action.id]

        sync.remove_report_listener(reports.append)
        connection.set_online(False)
        sync.add_offline_action("api-request", ACTIVITY)
        connection.set_online(True)
        assert len(reports) == 1

    def test_initialize_loads_persisted_queue(self, cache_manager, connection, notifier, session):
        """Initialize loads the persisted queue"""
        connection.set_online(False)
        cache_manager.add_to_offline_queue({"type": "api-request", "url": ACTIVITY})

        fresh = OfflineSync(cache_manager, connection, notifier=notifier, session=session)
        fresh.initialize()

        assert len(fresh.pending_actions) == 1
        fresh.dispose()
