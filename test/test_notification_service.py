import asyncio
from datetime import datetime

from database.models import Appointment, Notification, NotificationStatus, UserRole
from services.notification_service import NotificationDispatcher
from services.push_service import PushChannel
from support import BrokenPushChannel


class FakeWebSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(payload)


def test_notify_stores_and_pushes(db, notifier, push, student):
    notification = notifier.notify(db, student.id, "Hello")

    assert notification.id is not None
    assert notification.status == NotificationStatus.UNREAD
    assert push.published == [(student.id, "Hello")]


def test_list_unread_is_newest_first_and_limited(db, notifier, student):
    for i in range(12):
        notifier.notify(db, student.id, f"message {i}")

    unread = notifier.list_unread(db, student.id)

    assert len(unread) == 10
    assert unread[0].message == "message 11"
    assert unread[-1].message == "message 2"
    assert [n.message for n in notifier.list_unread(db, student.id, limit=2)] == ["message 11", "message 10"]


def test_mark_all_read_only_touches_the_owner(db, notifier, student, counselor):
    notifier.notify(db, student.id, "a")
    notifier.notify(db, student.id, "b")
    notifier.notify(db, counselor.id, "c")

    assert notifier.mark_all_read(db, student.id) == 2
    assert notifier.list_unread(db, student.id) == []
    assert [n.message for n in notifier.list_unread(db, counselor.id)] == ["c"]
    assert notifier.mark_all_read(db, student.id) == 0


def test_notify_admins_reaches_every_admin(db, notifier, push, make_user, student):
    admins = [make_user(UserRole.ADMIN) for _ in range(2)]

    assert notifier.notify_admins(db, "Heads up") == 2
    assert sorted(uid for uid, _ in push.published) == sorted(a.id for a in admins)


def test_notify_admins_without_admins(db, notifier, push):
    assert notifier.notify_admins(db, "Heads up") == 0
    assert push.published == []


def test_persistence_failure_keeps_prior_commit(db, notifier, push, student, counselor):
    appointment = Appointment(
        student_id=student.id, counselor_id=counselor.id, date_time=datetime(2030, 1, 1),
        reason="Stress"
    )
    db.add(appointment)
    db.commit()

    # Unknown user violates the foreign key
    assert notifier.notify(db, 987654, "lost") is None

    assert push.published == []
    assert db.query(Appointment).count() == 1
    assert db.query(Notification).count() == 0


def test_push_failure_is_swallowed(db, student):
    notifier = NotificationDispatcher(BrokenPushChannel())

    notification = notifier.notify(db, student.id, "still stored")

    assert notification is not None
    assert db.query(Notification).filter(Notification.user_id == student.id).count() == 1


def test_push_channel_delivers_to_every_socket_of_a_user():
    channel = PushChannel()
    first, second, stranger = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()

    async def scenario():
        await channel.connect(1, first)
        await channel.connect(1, second)
        await channel.connect(2, stranger)
        channel.publish(1, "Your appointment was approved.")
        await asyncio.sleep(0.01)

    asyncio.run(scenario())

    expected = {"event": "new-notification", "message": "Your appointment was approved."}
    assert first.accepted and second.accepted
    assert first.sent == [expected]
    assert second.sent == [expected]
    assert stranger.sent == []
    assert channel.connection_count(1) == 2


def test_push_channel_drops_failing_sockets():
    channel = PushChannel()
    broken = FakeWebSocket(fail=True)

    async def scenario():
        await channel.connect(1, broken)
        channel.publish(1, "hello")
        await asyncio.sleep(0.01)

    asyncio.run(scenario())

    assert channel.connection_count(1) == 0


def test_push_channel_publish_from_worker_thread():
    channel = PushChannel()
    socket = FakeWebSocket()

    async def scenario():
        await channel.connect(5, socket)
        await asyncio.to_thread(channel.publish, 5, "from a thread")
        for _ in range(10):
            if socket.sent:
                break
            await asyncio.sleep(0.01)

    asyncio.run(scenario())

    assert socket.sent == [{"event": "new-notification", "message": "from a thread"}]


def test_push_channel_without_listeners_is_a_no_op():
    channel = PushChannel()
    channel.publish(1, "nobody home")
    assert channel.connection_count(1) == 0


def test_disconnect_unknown_socket_is_harmless():
    channel = PushChannel()
    channel.disconnect(1, FakeWebSocket())
    assert channel.connection_count(1) == 0


def test_push_channel_reads_sockets_when_sending():
    channel = PushChannel()
    leaving, joining = FakeWebSocket(), FakeWebSocket()

    async def scenario():
        await channel.connect(1, leaving)
        channel.publish(1, "hello")
        # Registry changes before the send task runs
        channel.disconnect(1, leaving)
        await channel.connect(1, joining)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())

    assert leaving.sent == []
    assert joining.sent == [{"event": "new-notification", "message": "hello"}]
