"""Shared constants and fakes for the test suite."""

PASSWORD = "Passw0rdX"


class FakePushChannel:
    """Records published messages instead of sending them."""

    def __init__(self):
        self.published = []

    def publish(self, user_id, message):
        self.published.append((user_id, message))

    def messages_for(self, user_id):
        return [message for uid, message in self.published if uid == user_id]


class BrokenPushChannel:
    def publish(self, user_id, message):
        raise ConnectionError("socket gone")
