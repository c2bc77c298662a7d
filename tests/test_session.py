"""Tests for the diagnostic session state machine against a scripted channel."""

import re
import threading

import pytest

from elmlink.channel import ChannelError
from elmlink.constants import (
    IOCTL_READ_TIMEOUT, TIMEOUT_SHORT_MS, TIMEOUT_LONG_MS,
    PID_SPEED, PID_RPM, PID_COOLANT_TEMP, MAX_TRANSPORT_FAILURES,
)
from elmlink.session import (
    DiagnosticSession, InitResult, InitStage, SessionState, pid_request,
)

LINK_OK = {
    "ATZ": "\rELM327 v1.5\r\r>",
    "ATE0": "OK\r\r>",
    "ATH0": "OK\r\r>",
    "010D": "41 0D 32 \r\r>",
}


class Recorder:
    def __init__(self):
        self.logs = []
        self.states = []


@pytest.fixture
def rec():
    return Recorder()


@pytest.fixture
def make_session(make_channel, clock, rec):
    def _make(replies=None):
        ch = make_channel(replies)
        s = DiagnosticSession(ch, on_log=rec.logs.append,
                              on_state_change=rec.states.append,
                              clock=clock, sleep=lambda seconds: None)
        return s, ch
    return _make


@pytest.fixture
def ready(make_session):
    """Session after a successful init with silent PID banks."""
    s, ch = make_session(LINK_OK)
    assert s.init().ok
    ch.written.clear()
    return s, ch


def test_pid_request():
    assert pid_request(0x0D) == "010D\r"
    assert pid_request(0x00) == "0100\r"
    assert pid_request(0x02, mode=0x09) == "0902\r"


# ── init ──

def test_init_fails_at_reset_when_adapter_silent(make_session, rec):
    s, ch = make_session()
    result = s.init()
    assert result == InitResult(SessionState.FAILED, InitStage.RESET)
    assert not result.ok
    assert ch.written == ["ATZ"] * 10
    assert s.state is SessionState.FAILED
    assert not s.connected
    assert rec.states == ["connecting", "disconnected"]


def test_init_fails_when_speed_read_fails(make_session):
    s, ch = make_session({**LINK_OK, "010D": "NO DATA\r\r>"})
    result = s.init()
    assert result.failed_stage is InitStage.PROBE
    assert ch.written == ["ATZ", "ATE0", "ATH0"] + ["010D"] * 5


def test_init_retries_reset_until_reply(make_session):
    s, ch = make_session({**LINK_OK, "ATZ": (None, None, "ELM327 v1.5\r\r>")})
    assert s.init().ok
    assert ch.written[:4] == ["ATZ", "ATZ", "ATZ", "ATE0"]


def test_init_ready_despite_bank_failures(make_session, rec):
    s, ch = make_session(LINK_OK)
    result = s.init()
    assert result == InitResult(SessionState.READY)
    assert s.state is SessionState.READY
    assert s.connected
    assert rec.states == ["connecting", "connected"]
    banks = [c for c in ch.written if c.startswith("01") and c != "010D"]
    assert banks == ["0100", "0120", "0140", "0160", "0180", "01A0", "01C0", "01E0"]
    # Unanswered banks keep the all-supported default
    assert s.is_pid_supported(0x5C)
    assert len(s.supported_pids()) == 256


def test_init_reads_bank_bitmap(make_session):
    s, _ = make_session({**LINK_OK, "0100": "41 00 BE 3E B8 11 \r\r>"})
    assert s.init().ok
    assert s.is_pid_supported(0x00)
    assert s.is_pid_supported(0x01)
    assert not s.is_pid_supported(0x02)
    assert s.is_pid_supported(PID_RPM)
    assert s.is_pid_supported(PID_SPEED)
    assert not s.is_pid_supported(0x09)
    # later banks unanswered
    assert s.is_pid_supported(0x21)


def test_init_short_bank_reply_keeps_missing_bytes(make_session):
    s, _ = make_session({**LINK_OK, "0100": "41 00 BE 3E\r\r>"})
    assert s.init().ok
    assert not s.is_pid_supported(0x02)
    assert not s.is_pid_supported(0x09)
    # bytes 3 and 4 never arrived
    assert s.is_pid_supported(0x11)
    assert s.is_pid_supported(0x12)
    assert s.is_pid_supported(0x19)
    assert s.is_pid_supported(0x20)


def test_init_bank_reply_stops_at_line_end(make_session):
    s, _ = make_session({**LINK_OK, "0100": "41 00 BE 3E\r41 0D 32\r\r>"})
    assert s.init().ok
    assert not s.is_pid_supported(0x02)
    assert s.is_pid_supported(0x11)
    assert s.is_pid_supported(0x20)


def test_init_skips_unsupported_bank(make_session):
    s, _ = make_session({**LINK_OK, "0120": "NO DATA\r\r>"})
    assert s.init().ok
    assert s.is_pid_supported(0x2F)


def test_pid_outside_bitmap_unsupported(ready):
    s, _ = ready
    assert not s.is_pid_supported(0x101)


# ── read_pid ──

def test_read_pid_end_to_end(ready):
    s, ch = ready
    assert s.read_pid(PID_SPEED) == 50
    assert ch.written == ["010D"]
    assert ch.ioctls[-1] == (IOCTL_READ_TIMEOUT, TIMEOUT_SHORT_MS)


def test_read_pid_skips_other_frames(ready):
    s, ch = ready
    ch.replies["010C"] = "41 0D 32 \r41 0C 1A F8 \r\r>"
    assert s.read_pid(PID_RPM) == 1726


def test_read_pid_after_searching(ready):
    s, ch = ready
    ch.replies["0105"] = ["SEARCHING", "...\r41 05 7B", " \r\r>"]
    assert s.read_pid(PID_COOLANT_TEMP) == 83


@pytest.mark.parametrize("reply", [
    "NO DATA\r\r>",
    "CAN ERROR\r\r>",
    "UNABLE TO CONNECT\r\r>",
    "41 0C\r\r>",
    "7F 01 12\r\r>",
    None,
])
def test_read_pid_no_value(ready, reply):
    s, ch = ready
    ch.replies["010C"] = reply
    assert s.read_pid(PID_RPM) is None


# ── DTCs ──

def test_read_dtc(ready):
    s, ch = ready
    ch.replies["03"] = "43 01 08 01 09 00 00\r\r>"
    codes = s.read_dtc()
    assert [str(c) for c in codes] == ["P0108", "P0109"]
    assert [c.value for c in codes] == [0x0108, 0x0109]
    assert ch.written == ["03"]
    assert ch.ioctls[-1] == (IOCTL_READ_TIMEOUT, TIMEOUT_LONG_MS)


def test_read_dtc_empty_page_moves_on(ready):
    s, ch = ready
    ch.replies["0301"] = "43 01 33 00 00\r\r>"
    codes = s.read_dtc()
    assert [c.value for c in codes] == [0x0133]
    assert ch.written == ["03", "0301"]


def test_read_dtc_no_data_stops(ready):
    s, ch = ready
    ch.replies["03"] = "NO DATA\r\r>"
    assert s.read_dtc() == []
    assert ch.written == ["03"]


def test_read_dtc_all_pages_silent(ready):
    s, ch = ready
    assert s.read_dtc() == []
    assert ch.written == ["03", "0301", "0302", "0303", "0304", "0305"]


def test_read_dtc_max_codes(ready):
    s, ch = ready
    ch.replies["03"] = "43 01 01 01 02 01 03\r\r>"
    assert len(s.read_dtc(max_codes=2)) == 2


def test_clear_dtc(ready):
    s, ch = ready
    ch.replies["04"] = "44\r\r>"
    s.clear_dtc()
    assert ch.written == ["04"]


# ── VIN ──

VIN_OK = "000D\r0: 49 02 01 31 32 33\r1: 34 35 36 37 38 39 30\r\r>"
VIN_SHORT = "0017\r0: 49 02 01 31 32 33\r1: 34 35 36 37 38 39 30\r\r>"


def test_read_vin(ready):
    s, ch = ready
    ch.replies["0902"] = VIN_OK
    assert s.read_vin() == "1234567890"
    assert s.vin == "1234567890"
    assert ch.written == ["0902"]


def test_read_vin_second_attempt(ready):
    s, ch = ready
    ch.replies["0902"] = (VIN_SHORT, VIN_OK)
    assert s.read_vin() == "1234567890"
    assert ch.written == ["0902", "0902"]


def test_read_vin_rejects_length_mismatch(ready, rec):
    s, ch = ready
    ch.replies["0902"] = VIN_SHORT
    assert s.read_vin() is None
    assert ch.written == ["0902", "0902"]
    assert any("rejected" in m for m in rec.logs)


# ── misc ──

def test_read_utc_time(ready):
    s, _ = ready
    stamp = s.read_utc_time()
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.0000Z", stamp)


def test_read_live_values(ready):
    s, ch = ready
    ch.replies["010C"] = "41 0C 1A F8 \r\r>"
    values = {name: (val, unit, formatted, ratio)
              for name, val, unit, formatted, ratio in s.read_live_values()}
    assert set(values) == {"RPM", "Speed"}
    assert values["RPM"][:3] == (1726, "rpm", "1726")
    assert 0 < values["RPM"][3] < 1


def test_close(ready, rec):
    s, ch = ready
    s.close()
    assert not ch.is_open
    assert s.state is SessionState.NOT_CONNECTED
    assert not s.connected
    assert rec.states[-1] == "disconnected"


# ── transport failures ──

def test_transport_error_reported_as_no_data(ready):
    s, ch = ready
    ch.replies["010D"] = ChannelError("unplugged")
    assert s.read_pid(PID_SPEED) is None
    assert s.transport_failures == 1
    assert s.connected


def test_transport_error_during_dtc_read(ready):
    s, ch = ready
    for page in ("03", "0301", "0302", "0303", "0304", "0305"):
        ch.replies[page] = ChannelError("unplugged")
    assert s.read_dtc() == []
    assert not s.connected


def test_transport_failures_drop_connection(ready, rec):
    s, ch = ready
    ch.replies["010D"] = ChannelError("unplugged")
    for _ in range(MAX_TRANSPORT_FAILURES):
        assert s.read_pid(PID_SPEED) is None
    assert s.transport_failures == MAX_TRANSPORT_FAILURES
    assert not s.connected
    assert s.state is SessionState.NOT_CONNECTED
    assert rec.states[-1] == "disconnected"


def test_dropped_session_closed_from_handler_thread(make_channel, clock):
    ch = make_channel(LINK_OK)
    states = []
    closers = []

    def on_state_change(state):
        states.append(state)
        if state == "disconnected":
            t = threading.Thread(target=s.close, daemon=True)
            closers.append(t)
            t.start()

    s = DiagnosticSession(ch, on_state_change=on_state_change,
                          clock=clock, sleep=lambda seconds: None)
    assert s.init().ok
    ch.replies["010D"] = ChannelError("unplugged")
    for _ in range(MAX_TRANSPORT_FAILURES):
        s.read_pid(PID_SPEED)

    assert len(closers) == 1
    closers[0].join(timeout=2)
    assert not closers[0].is_alive()
    assert not ch.is_open
    assert states.count("disconnected") == 1


def test_successful_command_resets_failure_count(ready):
    s, ch = ready
    ch.replies["010D"] = (ChannelError("glitch"), "41 0D 32 \r\r>")
    assert s.read_pid(PID_SPEED) is None
    assert s.read_pid(PID_SPEED) == 50
    assert s.transport_failures == 0
