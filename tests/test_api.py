"""Tests for the reminder HTTP surface."""

from npd_reminders.reminders import repository
from npd_reminders.reminders.dispatcher import BroadcastResult
from npd_reminders.reminders.errors import DispatchError, TokenInvalid
from npd_reminders.reminders.models import Device, Reminder


def schedule(client, **body):
    payload = {"title": "Reminder", "scheduledAt": "2030-01-01T09:00:00Z"}
    payload.update(body)
    response = client.post("/scheduleReminder", json=payload)
    assert response.status_code == 200, response.text
    return response.json()["reminderId"]


class TestMethods:
    def test_wrong_method_is_405(self, client):
        for path in ("/registerToken", "/removeToken", "/scheduleReminder",
                     "/cancelReminder", "/sendPush", "/sendBroadcast"):
            assert client.get(path).status_code == 405

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"


class TestTokens:
    def test_register_and_remove(self, client, db):
        assert client.post("/registerToken", json={"token": "T1", "userId": "U1", "platform": "ios"}).json() == {
            "success": True
        }
        device = db.get(Device, "U1")
        assert device.token == "T1"
        assert device.platform == "ios"

        assert client.post("/removeToken", json={"userId": "U1"}).json() == {"success": True}
        db.expire_all()
        assert db.get(Device, "U1") is None

    def test_register_without_user_keys_by_token(self, client, db):
        client.post("/registerToken", json={"token": "T-anon"})
        assert db.get(Device, "T-anon") is not None

    def test_register_requires_token(self, client):
        response = client.post("/registerToken", json={"userId": "U1"})
        assert response.status_code == 400
        assert "token" in response.json()["error"]

    def test_remove_requires_token_or_user(self, client):
        response = client.post("/removeToken", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "Token or userId is required"}

    def test_remove_absent_device_succeeds(self, client):
        assert client.post("/removeToken", json={"token": "never-registered"}).status_code == 200


class TestScheduleReminder:
    def test_creates_unsent_reminder(self, client, db):
        reminder_id = schedule(
            client,
            userId="U1",
            token="T1",
            title="Pay rent",
            body="Landlord",
            data={"taskId": "task-9", "type": "task"},
            repeatType="monthly",
        )
        row = db.get(Reminder, reminder_id)
        assert row.sent is False
        assert row.owner_id == "U1"
        assert row.token == "T1"
        assert row.source_kind == "task"
        assert row.source_ref == "task-9"
        assert row.repeat_rule == "monthly"

    def test_missing_title_or_time_is_400(self, client):
        assert client.post("/scheduleReminder", json={"scheduledAt": "2030-01-01T09:00:00Z"}).status_code == 400
        assert client.post("/scheduleReminder", json={"title": "x"}).status_code == 400

    def test_bad_timestamp_is_400(self, client):
        response = client.post("/scheduleReminder", json={"title": "x", "scheduledAt": "tomorrow-ish"})
        assert response.status_code == 400

    def test_unknown_repeat_type_is_accepted_as_daily(self, client, db):
        response = client.post("/scheduleReminder", json={
            "title": "x", "scheduledAt": "2030-01-01T09:00:00Z", "repeatType": "hourly",
        })
        assert response.status_code == 200
        reminder_id = response.json()["reminderId"]
        assert db.get(Reminder, reminder_id).repeat_rule == "daily"

    def test_null_repeat_type_is_one_shot(self, client, db):
        reminder_id = schedule(client, repeatType=None)
        assert db.get(Reminder, reminder_id).repeat_rule == "none"


class TestCancelReminder:
    def test_cancel_by_id(self, client, db):
        reminder_id = schedule(client)
        assert client.post("/cancelReminder", json={"reminderId": reminder_id}).status_code == 200
        db.expire_all()
        assert db.get(Reminder, reminder_id) is None

    def test_cancel_unknown_id_succeeds(self, client):
        response = client.post("/cancelReminder", json={"reminderId": "does-not-exist"})
        assert response.json() == {"success": True}

    def test_cancel_by_task_only_deletes_unsent(self, client, db):
        pending = schedule(client, data={"taskId": "task-1"})
        delivered = schedule(client, data={"taskId": "task-1"})
        other_task = schedule(client, data={"taskId": "task-2"})
        row = db.get(Reminder, delivered)
        repository.mark_sent(db, row, row.scheduled_at)

        client.post("/cancelReminder", json={"taskId": "task-1"})

        db.expire_all()
        assert db.get(Reminder, pending) is None
        assert db.get(Reminder, delivered) is not None
        assert db.get(Reminder, other_task) is not None

    def test_cancel_by_task_leaves_other_kinds_with_same_id(self, client, db):
        task = schedule(client, data={"taskId": "42"})
        note = schedule(client, data={"noteId": "42"})
        habit = schedule(client, data={"habitId": "42"})

        client.post("/cancelReminder", json={"taskId": "42"})

        db.expire_all()
        assert db.get(Reminder, task) is None
        assert db.get(Reminder, note) is not None
        assert db.get(Reminder, habit) is not None

    def test_cancel_by_note_scoped_to_user(self, client, db):
        mine = schedule(client, userId="U1", data={"noteId": "note-1"})
        theirs = schedule(client, userId="U2", data={"noteId": "note-1"})

        client.post("/cancelReminder", json={"noteId": "note-1", "userId": "U1"})

        db.expire_all()
        assert db.get(Reminder, mine) is None
        assert db.get(Reminder, theirs) is not None


class TestSendPush:
    def test_send_to_explicit_token(self, client, mock_dispatcher):
        response = client.post("/sendPush", json={"token": "T1", "title": "Hi", "body": "there"})
        assert response.json() == {"success": True, "messageId": "projects/test/messages/1"}
        mock_dispatcher.send_to_token.assert_called_once_with("T1", "Hi", "there", None)

    def test_send_resolves_user_device(self, client, mock_dispatcher):
        client.post("/registerToken", json={"token": "T-user", "userId": "U1"})
        client.post("/sendPush", json={"userId": "U1", "title": "Hi"})
        assert mock_dispatcher.send_to_token.call_args[0][0] == "T-user"

    def test_no_token_found_is_400(self, client):
        response = client.post("/sendPush", json={"userId": "nobody", "title": "Hi"})
        assert response.status_code == 400
        assert response.json() == {"error": "No token found"}

    def test_token_invalid_evicts_device(self, client, db, mock_dispatcher):
        client.post("/registerToken", json={"token": "T-stale", "userId": "U1"})
        mock_dispatcher.send_to_token.side_effect = TokenInvalid("Requested entity was not found.")

        response = client.post("/sendPush", json={"userId": "U1", "title": "Hi"})

        assert response.status_code == 500
        assert response.json()["error"]
        db.expire_all()
        assert db.get(Device, "U1") is None

    def test_other_dispatch_error_keeps_device(self, client, db, mock_dispatcher):
        client.post("/registerToken", json={"token": "T1", "userId": "U1"})
        mock_dispatcher.send_to_token.side_effect = DispatchError("quota exceeded")

        assert client.post("/sendPush", json={"userId": "U1", "title": "Hi"}).status_code == 500
        assert db.get(Device, "U1") is not None


class TestSendBroadcast:
    def test_no_devices(self, client, mock_dispatcher):
        response = client.post("/sendBroadcast", json={"title": "News"})
        assert response.json() == {"success": True, "sent": 0}
        mock_dispatcher.send_broadcast.assert_not_called()

    def test_counts_and_invalid_token_cleanup(self, client, db, mock_dispatcher):
        for user, token in (("U1", "T1"), ("U2", "T2"), ("U3", "T3")):
            client.post("/registerToken", json={"token": token, "userId": user})
        mock_dispatcher.send_broadcast.return_value = BroadcastResult(
            success_count=2, failure_count=1, invalid_tokens=["T2"]
        )

        response = client.post("/sendBroadcast", json={"title": "News", "body": "v2 is out"})

        assert response.json() == {"success": True, "sent": 2, "failed": 1}
        assert sorted(mock_dispatcher.send_broadcast.call_args[0][0]) == ["T1", "T2", "T3"]
        db.expire_all()
        assert db.get(Device, "U2") is None
        assert db.get(Device, "U1") is not None

    def test_shared_token_is_sent_once(self, client, mock_dispatcher):
        client.post("/registerToken", json={"token": "T1", "userId": "U1"})
        client.post("/registerToken", json={"token": "T1"})

        client.post("/sendBroadcast", json={"title": "News"})

        assert mock_dispatcher.send_broadcast.call_args[0][0] == ["T1"]

    def test_title_required(self, client):
        assert client.post("/sendBroadcast", json={"body": "x"}).status_code == 400
