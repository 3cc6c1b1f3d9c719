from notifier.channels import DeliveryChannel, MemoryChannel
from notifier.config import DispatchSettings
from notifier.context import DispatchContext, RecordingTelemetry
from notifier.engine import DispatchEngine
from notifier.errors import DeliveryError
from notifier.rate_limit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingChannel(DeliveryChannel):
    """Fails for every address in ``failing`` (or for all when empty)."""

    def __init__(self, *failing: str):
        self.failing = set(failing)
        self.deliveries = []

    def deliver(self, message, context=None):
        if not self.failing or message.to in self.failing:
            raise DeliveryError("connection refused")
        self.deliveries.append(message)


def make_engine(channel=None, clock=None, **settings_overrides):
    settings = DispatchSettings(default_from_address="notifications@example.com", **settings_overrides)
    channel = channel if channel is not None else MemoryChannel()
    limiter = FixedWindowRateLimiter(
        limit=settings.rate_limit_per_minute,
        window_seconds=settings.rate_limit_window_seconds,
        clock=clock or FakeClock(),
    )
    return DispatchEngine(channel, settings=settings, rate_limiter=limiter)


def make_context():
    telemetry = RecordingTelemetry()
    secrets = {"SMTP_USERNAME": "test@example.com", "SMTP_PASSWORD": "test_password"}
    context = DispatchContext(
        tenant_id="test-org-123",
        user_id="test-user-456",
        secret_lookup=secrets.get,
        telemetry=telemetry,
    )
    return context, telemetry


ISSUE_CONTEXT = {
    "issue": {
        "title": "Bug in login",
        "description": "Cannot login",
        "priority": "high",
        "status": "open",
        "url": "https://example.com/issues/1",
    }
}


class FakeRedis:
    """Just enough of the redis-py client for the digest queue."""

    def __init__(self):
        self.lists = {}
        self.sets = {}

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def sadd(self, key, member):
        members = self.sets.setdefault(key, set())
        added = member not in members
        members.add(member)
        return int(added)

    def srem(self, key, member):
        members = self.sets.get(key, set())
        removed = member in members
        members.discard(member)
        return int(removed)

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return list(items[start:] if end == -1 else items[start:end + 1])

    def llen(self, key):
        return len(self.lists.get(key, []))

    def delete(self, key):
        return int(self.lists.pop(key, None) is not None)

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.commands = []

    def __getattr__(self, name):
        def queue(*args):
            self.commands.append((name, args))
            return self
        return queue

    def execute(self):
        results = [getattr(self.client, name)(*args) for name, args in self.commands]
        self.commands = []
        return results
