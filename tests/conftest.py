import pytest

from elmlink.channel import Channel, ChannelError
from elmlink.constants import POLL_TIMEOUT


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeChannel(Channel):
    """Scripted channel.

    replies maps a command (without the CR) to what the adapter sends back:
    a str/bytes reply, a list of chunks, or a ChannelError to raise on
    write. A tuple of such values is consumed one per write of that command.
    Commands without a reply produce silence. Each empty read advances the
    clock by one poll window.
    """

    def __init__(self, replies=None, clock=None):
        super().__init__()
        self.replies = dict(replies or {})
        self.clock = clock or FakeClock()
        self.written = []
        self.ioctls = []
        self._chunks = []
        self._open = True

    def open(self, path, baudrate=115200):
        self._open = True

    def close(self):
        self._open = False

    @property
    def is_open(self):
        return self._open

    def ioctl(self, request, value=None):
        self.ioctls.append((request, value))
        return super().ioctl(request, value)

    def feed(self, *chunks):
        self._chunks.extend(c.encode("ascii") if isinstance(c, str) else c for c in chunks)

    def write(self, data):
        cmd = data.decode("ascii").rstrip("\r")
        self.written.append(cmd)
        reply = self.replies.get(cmd)
        if isinstance(reply, tuple):
            # one scripted reply per call, last one repeats
            reply = reply[min(self.written.count(cmd), len(reply)) - 1]
        if isinstance(reply, ChannelError):
            raise reply
        if reply is None:
            return len(data)
        if isinstance(reply, list):
            self.feed(*reply)
        else:
            self.feed(reply)
        return len(data)

    def read(self, max_len):
        if not self._chunks:
            self.clock.advance(POLL_TIMEOUT)
            return b""
        chunk = self._chunks.pop(0)
        if len(chunk) > max_len:
            self._chunks.insert(0, chunk[max_len:])
            chunk = chunk[:max_len]
        return chunk


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_channel(clock):
    def _make(replies=None):
        return FakeChannel(replies, clock=clock)
    return _make
