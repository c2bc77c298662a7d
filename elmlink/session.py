"""OBD-II diagnostic session over an ELM327 channel - init, PIDs, DTCs, VIN."""

import string
import time
import threading
import logging
from dataclasses import dataclass
from enum import Enum

from .channel import ChannelError
from .classifier import ResponseStatus, classify
from .constants import (
    CMD_SOFT_RESET, LINK_SETUP_CMDS, CMD_CLEAR_DTC, CMD_READ_VIN,
    MODE_CURRENT_DATA, PID_RESPONSE, PID_SPEED, ERR_NO_DATA,
    PID_BANK_COUNT, PID_BANK_SIZE, PID_BANK_BYTES,
    IOCTL_READ_TIMEOUT, IOCTL_UTC_TIME,
    TIMEOUT_SHORT_MS, TIMEOUT_LONG_MS, READ_PID_DELAY, VIN_RETRY_DELAY,
    MAX_RESET_RETRIES, MAX_PROBE_RETRIES, MAX_VIN_RETRIES, MAX_DTC_PAGES,
    MAX_DTC_CODES, MAX_TRANSPORT_FAILURES,
    COMMAND_BUFFER_SIZE, PID_BUFFER_SIZE, DTC_BUFFER_SIZE, VIN_BUFFER_SIZE,
    CLEAR_BUFFER_SIZE,
)
from .fault_codes import DiagnosticTroubleCode
from .formulas import LIVE_PARAMS, decode
from .frames import decode_dtcs, decode_vin, dtc_request
from .hexcodec import ParseError, hex_byte
from .reader import Response, read_response

log = logging.getLogger(__name__)


class SessionState(Enum):
    NOT_CONNECTED = "not_connected"
    RESETTING = "resetting"
    READY = "ready"
    FAILED = "failed"


class InitStage(Enum):
    RESET = 1      # ATZ soft reset
    PROBE = 2      # vehicle speed read
    PID_SCAN = 3   # supported-PID banks; failures here are tolerated


@dataclass(frozen=True)
class InitResult:
    state: SessionState
    failed_stage: InitStage | None = None

    @property
    def ok(self):
        return self.state is SessionState.READY


def pid_request(pid, mode=MODE_CURRENT_DATA):
    """Format a data request, e.g. pid_request(0x0D) -> "010D\\r"."""
    return f"{mode:02X}{pid:02X}\r"


def _find_pid_payload(text, pid):
    """Return the text after "41 <pid> ", or None.

    Frames for other PIDs are skipped.
    """
    pos = 0
    while True:
        pos = text.find(PID_RESPONSE, pos)
        if pos < 0:
            return None
        pos += len(PID_RESPONSE)
        if hex_byte(text[pos:pos + 2]) != pid:
            continue
        p = pos
        while p < len(text) and text[p] not in " \r\n":
            p += 1
        while p < len(text) and text[p] == " ":
            p += 1
        if p < len(text) and text[p] not in "\r\n>":
            return text[p:]


def _is_hex_byte(token):
    return len(token) == 2 and all(c in string.hexdigits for c in token)


class DiagnosticSession:
    """OBD-II command/response engine for one ELM327 channel.

    Usage:
        session = DiagnosticSession(channel, on_log=print)
        result = session.init()
        if result.ok:
            speed = session.read_pid(PID_SPEED)
            codes = session.read_dtc()
        session.close()

    Query methods never raise for transport or ECU errors: they return
    None / False / [] and log the cause. Repeated transport failures are
    counted in transport_failures and drop the session to disconnected.
    """

    def __init__(self, channel, on_log=None, on_state_change=None,
                 clock=time.monotonic, sleep=time.sleep):
        self.on_log = on_log or (lambda msg: None)
        self.on_state_change = on_state_change or (lambda state: None)

        self.state = SessionState.NOT_CONNECTED
        self.connected = False
        self.vin = ""
        self.transport_failures = 0

        self._channel = channel
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        # Support bitmap, all-supported until a bank answers
        self._pid_map = bytearray(b"\xff" * (PID_BANK_COUNT * PID_BANK_BYTES))

    # ── Initialization ──

    def init(self):
        """Reset the adapter and handshake with the ECU.

        Returns an InitResult; on failure failed_stage names the stage.
        """
        with self._lock:
            self.state = SessionState.RESETTING
            self.on_state_change("connecting")

            # Stage 1: soft reset
            for attempt in range(1, MAX_RESET_RETRIES + 1):
                if self._send_command(CMD_SOFT_RESET, TIMEOUT_SHORT_MS):
                    break
                self.on_log(f"Reset attempt {attempt}/{MAX_RESET_RETRIES}: no reply")
            else:
                return self._init_failed(InitStage.RESET)

            # Stage 2: link setup, best effort
            for cmd in LINK_SETUP_CMDS:
                self._send_command(cmd, TIMEOUT_SHORT_MS)

            # Stage 3: probe the ECU
            for attempt in range(1, MAX_PROBE_RETRIES + 1):
                if self._read_pid(PID_SPEED) is not None:
                    break
                self.on_log(f"Probe attempt {attempt}/{MAX_PROBE_RETRIES}: no data")
            else:
                return self._init_failed(InitStage.PROBE)

            # Stage 4: supported-PID banks
            self._pid_map[:] = b"\xff" * len(self._pid_map)
            for bank in range(PID_BANK_COUNT):
                self._scan_pid_bank(bank)

            self.state = SessionState.READY
            self.connected = True
            self.transport_failures = 0
            self.on_state_change("connected")
            self.on_log(f"ECU ready, {len(self.supported_pids())} PIDs supported")
            return InitResult(SessionState.READY)

    def _init_failed(self, stage):
        self.state = SessionState.FAILED
        self.connected = False
        self.on_log(f"Init failed at stage {stage.value} ({stage.name.lower()})")
        self.on_state_change("disconnected")
        return InitResult(SessionState.FAILED, stage)

    def _scan_pid_bank(self, bank):
        """Read one "41 <base> b1 b2 b3 b4" support bitmap into the PID map."""
        base = bank * PID_BANK_SIZE
        resp = self._send_command(pid_request(base), TIMEOUT_SHORT_MS,
                                  PID_BUFFER_SIZE, settle=READ_PID_DELAY)
        if not resp or classify(resp.text) is not ResponseStatus.OK:
            log.debug("PID bank 0x%02X unavailable", base)
            return

        payload = _find_pid_payload(resp.text, base)
        if payload is None:
            return
        # Only this frame's line; bytes missing from a short reply keep 0xFF
        line = payload.splitlines()[0] if payload else ""
        for n, token in enumerate(line.split()[:PID_BANK_BYTES]):
            if not _is_hex_byte(token):
                break
            self._pid_map[bank * PID_BANK_BYTES + n] = hex_byte(token)

    # ── Supported PIDs ──

    def is_pid_supported(self, pid):
        """Check the support bitmap. Bank bitmaps describe PIDs base+1..base+0x20."""
        if pid == 0:
            return True
        index = pid - 1
        byte = index >> 3
        if byte >= len(self._pid_map):
            return False
        return bool(self._pid_map[byte] & (0x80 >> (index & 7)))

    def supported_pids(self):
        return [pid for pid in range(1, len(self._pid_map) * 8 + 1)
                if self.is_pid_supported(pid)]

    # ── Commands ──

    def read_pid(self, pid):
        """Read a mode 01 PID.

        Returns the decoded int, or None if the ECU did not supply it.
        """
        with self._lock:
            return self._read_pid(pid)

    def _read_pid(self, pid):
        resp = self._send_command(pid_request(pid), TIMEOUT_SHORT_MS,
                                  PID_BUFFER_SIZE, settle=READ_PID_DELAY)
        if not resp:
            return None

        text = resp.text
        status = classify(text)
        if status is not ResponseStatus.OK:
            log.debug("PID 0x%02X: %s", pid, status.value)
            return None

        payload = _find_pid_payload(text, pid)
        if payload is None:
            log.debug("PID 0x%02X: no matching frame in %r", pid, text)
            return None
        return decode(pid, payload)

    def read_dtc(self, max_codes=MAX_DTC_CODES):
        """Read stored trouble codes.

        Returns list of DiagnosticTroubleCode, possibly empty.
        """
        with self._lock:
            codes = []
            for page in range(MAX_DTC_PAGES):
                resp = self._send_command(dtc_request(page), TIMEOUT_LONG_MS,
                                          DTC_BUFFER_SIZE)
                if not resp:
                    continue
                text = resp.text
                if ERR_NO_DATA in text:
                    break
                codes = decode_dtcs(text, max_codes)
                break

            if codes:
                self.on_log(f"Found {len(codes)} trouble code(s)")
            return [DiagnosticTroubleCode(c) for c in codes]

    def clear_dtc(self):
        """Clear stored trouble codes. The ECU's answer is not checked."""
        with self._lock:
            self.on_log("Clearing trouble codes...")
            self._send_command(CMD_CLEAR_DTC, TIMEOUT_LONG_MS, CLEAR_BUFFER_SIZE)

    def read_vin(self):
        """Read the VIN (mode 09 PID 02).

        Returns the VIN string or None after MAX_VIN_RETRIES rejected attempts.
        """
        with self._lock:
            for attempt in range(1, MAX_VIN_RETRIES + 1):
                resp = self._send_command(CMD_READ_VIN, TIMEOUT_LONG_MS,
                                          VIN_BUFFER_SIZE)
                if resp:
                    try:
                        self.vin = decode_vin(resp.text)
                        self.on_log(f"VIN: {self.vin}")
                        return self.vin
                    except ParseError as e:
                        self.on_log(f"VIN attempt {attempt} rejected: {e}")
                self._sleep(VIN_RETRY_DELAY)
            return None

    def read_utc_time(self):
        """UTC time string from the channel, or None."""
        with self._lock:
            try:
                return self._channel.ioctl(IOCTL_UTC_TIME)
            except ChannelError as e:
                self._transport_failed(e)
                return None

    def read_live_values(self):
        """Read all live data gauges.

        Returns list of (name, value, unit, formatted, ratio) tuples.
        """
        results = []
        for name, pid, mn, mx, unit, fmt in LIVE_PARAMS:
            if not self.is_pid_supported(pid):
                continue
            val = self.read_pid(pid)
            if val is None:
                continue
            ratio = min(max((val - mn) / (mx - mn), 0), 1.0) if mx > mn else 0
            results.append((name, val, unit, fmt.format(val), ratio))
        return results

    def close(self):
        """Close the channel."""
        with self._lock:
            try:
                self._channel.close()
            except ChannelError as e:
                self.on_log(f"Close error (ignored): {e}")
            self.state = SessionState.NOT_CONNECTED
            if self.connected:
                self.connected = False
                self.on_state_change("disconnected")

    # ── Command round trip ──

    def _send_command(self, cmd, timeout_ms, size=COMMAND_BUFFER_SIZE, settle=0.0):
        """Write cmd and read the reply into a fresh buffer of `size` bytes.

        Returns a Response; empty when nothing arrived or the transport failed.
        """
        try:
            log.debug("TX: %r", cmd)
            self._channel.write(cmd.encode("ascii"))
            if settle:
                self._sleep(settle)
            self._channel.ioctl(IOCTL_READ_TIMEOUT, timeout_ms)
            resp = read_response(self._channel, size, clock=self._clock)
        except ChannelError as e:
            self._transport_failed(e)
            return Response()

        self.transport_failures = 0
        log.debug("RX (%s): %r", "ok" if resp.complete else "incomplete", resp.text)
        return resp

    def _transport_failed(self, error):
        self.transport_failures += 1
        log.warning("Transport error (%d in a row): %s", self.transport_failures, error)
        if self.connected and self.transport_failures >= MAX_TRANSPORT_FAILURES:
            self.connected = False
            self.state = SessionState.NOT_CONNECTED
            self.on_log("Adapter lost, reconnect required")
            self.on_state_change("disconnected")
