"""Diagnostic trouble codes and the generic SAE description database."""

import os
import re
from dataclasses import dataclass

# Fault code database: section -> {code_str: description}
_DB = {}

_DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")

_FILES = [
    "generic_dtc.txt",
]

# Top two bits of the first byte select the system letter
_SYSTEMS = "PCBU"


@dataclass(frozen=True)
class DiagnosticTroubleCode:
    """A 16-bit trouble code as reported by mode 03.

    str() gives the dongle's wire rendering "P%04x"; sae gives the
    standard J2012 form, e.g. 0x0108 -> "P0108", 0x4235 -> "C0235".
    """
    value: int

    def __str__(self):
        return f"P{self.value:04x}"

    @property
    def sae(self):
        hi = (self.value >> 8) & 0xFF
        lo = self.value & 0xFF
        system = _SYSTEMS[(hi & 0xC0) >> 6]
        return f"{system}{(hi & 0x30) >> 4:X}{hi & 0x0F:X}{lo:02X}"

    @property
    def description(self):
        return lookup(self.sae)


def _parse_trouble_codes_file(filepath):
    """Parse a trouble code file into sections."""
    codes = {}
    current_section = None

    try:
        with open(filepath, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith(";"):
                    continue

                # Section header: [Powertrain], [Network], ...
                m = re.match(r"^\[([A-Za-z ]+)\]$", line)
                if m:
                    current_section = m.group(1)
                    codes.setdefault(current_section, {})
                    continue

                if current_section is None:
                    continue

                m = re.match(r"^([PCBU][0-9A-F]{4})\s*=\s*(.+)$", line)
                if m:
                    codes[current_section][m.group(1)] = m.group(2).strip()
    except FileNotFoundError:
        pass

    return codes


def _load_database():
    """Load all trouble code files into the database."""
    if _DB:
        return

    for fname in _FILES:
        parsed = _parse_trouble_codes_file(os.path.join(_DATA_DIR, fname))
        for section, entries in parsed.items():
            _DB.setdefault(section, {}).update(entries)


def lookup(code):
    """Look up a trouble code description.

    Args:
        code: SAE code string ("P0301") or DiagnosticTroubleCode

    Returns:
        Description string or "Unknown fault code XXXXX"
    """
    _load_database()
    if isinstance(code, DiagnosticTroubleCode):
        code = code.sae
    code = str(code).strip().upper()
    for entries in _DB.values():
        if code in entries:
            return entries[code]
    return f"Unknown fault code {code}"


def get_all_sections():
    """Return dict of all loaded sections and their codes."""
    _load_database()
    return dict(_DB)
