"""Tests for the web fallback poller and its fired-marker bookkeeping."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from npd_reminders.client.capabilities import PermissionState, WebNotifier
from npd_reminders.client.config import ClientSettings
from npd_reminders.client.events import E, NotificationBus
from npd_reminders.client.poller import FiredMarkerBuffer, WebFallbackPoller, marker_key
from npd_reminders.client.settings_store import InMemorySettingsStore
from npd_reminders.client.sources import NoteItem, TaskItem
from npd_reminders.utils.timezone import epoch_ms


NOW = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)


class StaticProvider:
    def __init__(self, tasks=(), notes=()):
        self.tasks = list(tasks)
        self.notes = list(notes)
        self.loads = 0

    async def load_tasks(self):
        self.loads += 1
        return self.tasks

    async def load_notes(self):
        return self.notes


class RecordingNotifier(WebNotifier):
    def __init__(self, permission):
        self._permission = permission
        self.shown = []

    def permission(self):
        return self._permission

    async def request_permission(self):
        return self._permission

    def show(self, title, body):
        self.shown.append(title)


def make_poller(provider, notifier=None, store=None, **config):
    bus = NotificationBus()
    alerts = []
    bus.on(E.IN_APP_ALERT, alerts.append)
    poller = WebFallbackPoller(provider, bus, notifier=notifier, store=store, config=ClientSettings(**config))
    return poller, alerts


class TestPollWindow:
    @pytest.mark.asyncio
    async def test_item_30s_overdue_fires_once_across_five_polls(self):
        task = TaskItem(id="t1", text="Stand-up", reminder_time=NOW - timedelta(seconds=30), priority="high")
        poller, alerts = make_poller(StaticProvider(tasks=[task]))

        for tick in range(5):
            await poller.poll_once(NOW + timedelta(seconds=10 * tick))

        assert len(alerts) == 1
        assert alerts[0].body == "Stand-up"
        assert alerts[0].priority == "high"
        assert alerts[0].vibration == [200, 100, 200, 100, 200]

    @pytest.mark.asyncio
    async def test_item_90s_overdue_never_fires(self):
        task = TaskItem(id="t1", text="Old", reminder_time=NOW - timedelta(seconds=90))
        poller, alerts = make_poller(StaticProvider(tasks=[task]))

        for tick in range(5):
            await poller.poll_once(NOW + timedelta(seconds=10 * tick))

        assert alerts == []

    @pytest.mark.asyncio
    async def test_window_is_half_open(self):
        due_now = TaskItem(id="a", text="edge now", reminder_time=NOW)
        exactly_60s = TaskItem(id="b", text="edge 60s", reminder_time=NOW - timedelta(seconds=60))
        future = TaskItem(id="c", text="future", reminder_time=NOW + timedelta(seconds=1))
        poller, alerts = make_poller(StaticProvider(tasks=[due_now, exactly_60s, future]))

        fired = await poller.poll_once(NOW)

        assert fired == [marker_key("task", "a", NOW)]
        assert [a.body for a in alerts] == ["edge now"]

    @pytest.mark.asyncio
    async def test_completed_tasks_skipped_and_due_date_used(self):
        tasks = [
            TaskItem(id="done", text="Done", reminder_time=NOW, completed=True),
            TaskItem(id="due", text="Due date only", due_date=NOW - timedelta(seconds=5)),
        ]
        poller, alerts = make_poller(StaticProvider(tasks=tasks))

        await poller.poll_once(NOW)

        assert [a.body for a in alerts] == ["Due date only"]

    @pytest.mark.asyncio
    async def test_notes_fire(self):
        note = NoteItem(id="n1", title="", reminder_time=NOW - timedelta(seconds=1))
        poller, alerts = make_poller(StaticProvider(notes=[note]))

        await poller.poll_once(NOW)

        assert alerts[0].title == "📝 Note Reminder"
        assert alerts[0].body == "Untitled Note"
        assert alerts[0].extra == {"noteId": "n1", "type": "note"}

    @pytest.mark.asyncio
    async def test_new_occurrence_of_same_item_fires_again(self):
        task = TaskItem(id="t1", text="Repeat", reminder_time=NOW)
        poller, alerts = make_poller(StaticProvider(tasks=[task]))

        await poller.poll_once(NOW)
        task.reminder_time = NOW + timedelta(seconds=20)
        await poller.poll_once(NOW + timedelta(seconds=20))

        assert len(alerts) == 2

    @pytest.mark.asyncio
    async def test_naive_reminder_time_does_not_skip_other_tasks(self):
        tasks = [
            TaskItem(id="naive", text="Naive", reminder_time=(NOW - timedelta(seconds=5)).replace(tzinfo=None)),
            TaskItem(id="aware", text="Aware", reminder_time=NOW - timedelta(seconds=5)),
        ]
        poller, alerts = make_poller(StaticProvider(tasks=tasks))

        await poller.poll_once(NOW)

        assert [a.body for a in alerts] == ["Naive", "Aware"]

    @pytest.mark.asyncio
    async def test_bad_item_does_not_skip_the_rest(self):
        tasks = [
            TaskItem(id="bad", text="Bad", reminder_time="not a datetime"),
            TaskItem(id="good", text="Good", reminder_time=NOW),
        ]
        poller, alerts = make_poller(StaticProvider(tasks=tasks))

        await poller.poll_once(NOW)

        assert [a.body for a in alerts] == ["Good"]

    @pytest.mark.asyncio
    async def test_provider_failure_does_not_break_poll(self):
        class Broken(StaticProvider):
            async def load_tasks(self):
                raise RuntimeError("store offline")

        note = NoteItem(id="n1", title="Still checked", reminder_time=NOW)
        poller, alerts = make_poller(Broken(notes=[note]))

        await poller.poll_once(NOW)

        assert [a.body for a in alerts] == ["Still checked"]


class TestOsNotification:
    @pytest.mark.asyncio
    async def test_shown_only_when_granted(self):
        task = TaskItem(id="t1", text="Stretch", reminder_time=NOW)
        granted = RecordingNotifier(PermissionState.GRANTED)
        denied = RecordingNotifier(PermissionState.DENIED)

        for notifier in (granted, denied):
            poller, alerts = make_poller(StaticProvider(tasks=[task]), notifier=notifier)
            await poller.poll_once(NOW)
            assert len(alerts) == 1

        assert granted.shown == ["⏰ Task Reminder"]
        assert denied.shown == []


class TestFiredMarkers:
    def test_overflow_trims_to_newest(self):
        buffer = FiredMarkerBuffer(cap=200, trim_to=100, window_ms=60_000)
        now_ms = epoch_ms(NOW)
        old = NOW - timedelta(hours=1)
        for i in range(201):
            buffer.add(marker_key("task", str(i), old), now_ms)

        assert len(buffer) == 100
        assert marker_key("task", "200", old) in buffer
        assert marker_key("task", "0", old) not in buffer

    def test_trim_never_drops_marker_inside_window(self):
        buffer = FiredMarkerBuffer(cap=200, trim_to=100, window_ms=60_000)
        now_ms = epoch_ms(NOW)
        recent = marker_key("task", "burst-0", NOW - timedelta(seconds=10))
        buffer.add(recent, now_ms)
        for i in range(200):
            buffer.add(marker_key("task", f"old-{i}", NOW - timedelta(hours=2)), now_ms)

        assert recent in buffer
        assert len(buffer) == 101

    def test_ids_containing_dashes(self):
        buffer = FiredMarkerBuffer(cap=1, trim_to=0, window_ms=60_000)
        key = marker_key("note", "a-b-c", NOW)
        buffer.add(key, epoch_ms(NOW))
        buffer.add(marker_key("note", "x", NOW - timedelta(days=1)), epoch_ms(NOW))
        assert list(buffer.keys()) == [key]

    @pytest.mark.asyncio
    async def test_markers_persist_across_pollers(self):
        store = InMemorySettingsStore()
        task = TaskItem(id="t1", text="Once", reminder_time=NOW - timedelta(seconds=5))

        first, first_alerts = make_poller(StaticProvider(tasks=[task]), store=store)
        await first.poll_once(NOW)
        second, second_alerts = make_poller(StaticProvider(tasks=[task]), store=store)
        await second.poll_once(NOW + timedelta(seconds=10))

        assert len(first_alerts) == 1
        assert second_alerts == []
        assert await store.get("firedReminderIds") == [marker_key("task", "t1", task.reminder_time)]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        provider = StaticProvider()
        poller, _ = make_poller(provider, POLL_INTERVAL_SECONDS=1)

        poller.start()
        poller.start()
        await asyncio.sleep(0.05)
        assert poller.running
        await poller.stop()

        assert not poller.running
        assert provider.loads == 1
        await poller.stop()
