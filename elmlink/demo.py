"""Demo/simulator backend - an in-process ELM327 answering like a real car."""

import time
import random
import logging

from .channel import Channel, ChannelError
from .constants import (
    LINK_BAUDRATE, PID_BANK_SIZE, PID_BANK_COUNT,
    PID_ENGINE_LOAD, PID_COOLANT_TEMP, PID_SHORT_TERM_FUEL_TRIM_1,
    PID_LONG_TERM_FUEL_TRIM_1, PID_INTAKE_MAP, PID_RPM, PID_SPEED,
    PID_TIMING_ADVANCE, PID_INTAKE_TEMP, PID_MAF_FLOW, PID_THROTTLE,
    PID_RUNTIME, PID_FUEL_LEVEL, PID_BAROMETRIC, PID_CONTROL_MODULE_VOLTAGE,
    PID_AMBIENT_TEMP, PID_ENGINE_OIL_TEMP,
)

log = logging.getLogger(__name__)

DEMO_VIN = "1D4GP00R55B123456"

# Stored codes until cleared: P0108, P0109
DEMO_DTCS = (0x0108, 0x0109)

# PID -> (base raw value, byte count)
_BASE_VALUES = {
    PID_ENGINE_LOAD:            (0x40, 1),     # ~25 %
    PID_COOLANT_TEMP:           (0x7B, 1),     # 83 degC
    PID_SHORT_TERM_FUEL_TRIM_1: (0x80, 1),     # 0 %
    PID_LONG_TERM_FUEL_TRIM_1:  (0x82, 1),
    PID_INTAKE_MAP:             (0x21, 1),     # 33 kPa
    PID_RPM:                    (0x0D20, 2),   # 840 rpm
    PID_SPEED:                  (0x32, 1),     # 50 km/h
    PID_TIMING_ADVANCE:         (0x8C, 1),
    PID_INTAKE_TEMP:            (0x46, 1),     # 30 degC
    PID_MAF_FLOW:               (0x0190, 2),   # 4 g/s
    PID_THROTTLE:               (0x26, 1),     # ~15 %
    PID_RUNTIME:                (0x0258, 2),   # 600 s
    PID_FUEL_LEVEL:             (0x99, 1),     # 60 %
    PID_BAROMETRIC:             (0x65, 1),     # 101 kPa
    PID_CONTROL_MODULE_VOLTAGE: (0x3610, 2),   # 13.8 V
    PID_AMBIENT_TEMP:           (0x3C, 1),     # 20 degC
    PID_ENGINE_OIL_TEMP:        (0x82, 1),     # 90 degC
}

# Values that are kept fixed even with jitter on
_STEADY = {PID_RUNTIME, PID_BAROMETRIC}

_CHUNK_SIZE = 16
_IDLE_SLEEP = 0.002


def _bank_bitmap(base, pids):
    """4-byte support bitmap for PIDs base+1..base+0x20.

    The last bit announces the next bank when any higher PID exists.
    """
    bits = 0
    for pid in pids:
        if base < pid <= base + PID_BANK_SIZE:
            bits |= 1 << (PID_BANK_SIZE - (pid - base))
    if any(pid > base + PID_BANK_SIZE for pid in pids):
        bits |= 1
    return bits.to_bytes(4, "big")


def _hex(data):
    return " ".join(f"{b:02X}" for b in data)


class SimulatedChannel(Channel):
    """Simulated ELM327 adapter with the same interface as SerialChannel.

    Replies are queued on write() and handed out in small chunks by read(),
    so the response reader sees the same fragmentation as on a real UART.
    """

    def __init__(self, seed=None, jitter=True, pids=None, vin=DEMO_VIN,
                 dtcs=DEMO_DTCS):
        super().__init__()
        self._rng = random.Random(seed)
        self.jitter = jitter
        self.pids = dict(_BASE_VALUES if pids is None else pids)
        self.vin = vin
        self.dtcs = list(dtcs)
        self.port = ""
        self._open = False
        self._searched = False
        self._pending = bytearray()
        self._line = bytearray()
        self.echo = True
        self.commands = []  # every command received, for inspection

    def open(self, path="Demo", baudrate=LINK_BAUDRATE):
        self.port = path
        self._open = True
        self._pending.clear()
        log.info("[DEMO] Simulated adapter on %s @ %d baud", path, baudrate)

    def close(self):
        self._open = False
        self._pending.clear()

    @property
    def is_open(self):
        return self._open

    def reset_link(self):
        self._searched = False
        self.echo = True
        self._pending.clear()

    def write(self, data):
        if not self._open:
            raise ChannelError("Simulated adapter is not open")
        for b in data:
            if b == 0x0D:
                cmd = self._line.decode("ascii", errors="replace").strip().upper()
                self._line.clear()
                self._handle(cmd)
            else:
                self._line.append(b)
        return len(data)

    def read(self, max_len):
        if not self._open:
            raise ChannelError("Simulated adapter is not open")
        if not self._pending:
            time.sleep(_IDLE_SLEEP)
            return b""
        n = min(max_len, _CHUNK_SIZE, len(self._pending))
        chunk = bytes(self._pending[:n])
        del self._pending[:n]
        return chunk

    # ── Command handling ──

    def _handle(self, cmd):
        self.commands.append(cmd)
        reply = self._respond(cmd.replace(" ", ""))
        if self.echo:
            reply = cmd + "\r" + reply
        self._pending += (reply + "\r\r>").encode("ascii")

    def _respond(self, cmd):
        if cmd == "ATZ":
            self.reset_link()
            return "\rELM327 v1.5"
        if cmd == "ATE0":
            self.echo = False
            return "OK"
        if cmd.startswith("AT"):
            return "OK"
        if cmd == "03" or (cmd.startswith("03") and len(cmd) == 4):
            return self._stored_codes(cmd)
        if cmd == "04":
            self.dtcs.clear()
            return "44"
        if cmd == "0902":
            return self._vin_frames()
        if cmd.startswith("01") and len(cmd) == 4:
            try:
                pid = int(cmd[2:], 16)
            except ValueError:
                return "?"
            return self._current_data(pid)
        return "?"

    def _current_data(self, pid):
        prefix = ""
        if not self._searched:
            self._searched = True
            prefix = "SEARCHING...\r"

        if pid % PID_BANK_SIZE == 0 and pid < PID_BANK_COUNT * PID_BANK_SIZE:
            data = _bank_bitmap(pid, self.pids)
            if pid and not any(pid < p for p in self.pids):
                return prefix + "NO DATA"
            return prefix + f"41 {pid:02X} {_hex(data)} "

        entry = self.pids.get(pid)
        if entry is None:
            return prefix + "NO DATA"
        value, size = entry
        if self.jitter and pid not in _STEADY:
            spread = max(1, value // 20)
            value += self._rng.randint(-spread, spread)
        value = max(0, min(value, (1 << (8 * size)) - 1))
        return prefix + f"41 {pid:02X} {_hex(value.to_bytes(size, 'big'))} "

    def _stored_codes(self, cmd):
        if cmd != "03":
            return "NO DATA"
        data = b"".join(code.to_bytes(2, "big") for code in self.dtcs)
        data = data.ljust(6, b"\x00")
        return f"43 {_hex(data)}"

    def _vin_frames(self):
        """ISO 15765 style multi-frame reply: 7 payload bytes per frame."""
        payload = bytes([0x49, 0x02, 0x01]) + self.vin.encode("ascii")
        lines = [f"{len(payload):03X}"]
        lines.append(f"0: {_hex(payload[:6])}")
        rest = payload[6:]
        index = 1
        while rest:
            lines.append(f"{index & 0xF:X}: {_hex(rest[:7])}")
            rest = rest[7:]
            index += 1
        return "\r".join(lines)
