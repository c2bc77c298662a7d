"""Mode 01 PID value conversion formulas.

Each formula takes the hex payload that follows "41 <pid> " and returns an
int. All arithmetic is integer with truncation toward zero, so a decoded
value is fully determined by (pid, payload).
"""

from .constants import (
    PID_ENGINE_LOAD, PID_COOLANT_TEMP, PID_SHORT_TERM_FUEL_TRIM_1,
    PID_LONG_TERM_FUEL_TRIM_1, PID_SHORT_TERM_FUEL_TRIM_2,
    PID_LONG_TERM_FUEL_TRIM_2, PID_FUEL_PRESSURE, PID_INTAKE_MAP, PID_RPM,
    PID_SPEED, PID_TIMING_ADVANCE, PID_INTAKE_TEMP, PID_MAF_FLOW,
    PID_THROTTLE, PID_RUNTIME, PID_DISTANCE_WITH_MIL, PID_FUEL_RAIL_PRESSURE,
    PID_COMMANDED_EGR, PID_EGR_ERROR, PID_COMMANDED_EVAPORATIVE_PURGE,
    PID_FUEL_LEVEL, PID_WARMS_UPS, PID_DISTANCE, PID_EVAP_SYS_VAPOR_PRESSURE,
    PID_BAROMETRIC, PID_CATALYST_TEMP_B1S1, PID_CATALYST_TEMP_B2S1,
    PID_CATALYST_TEMP_B1S2, PID_CATALYST_TEMP_B2S2,
    PID_CONTROL_MODULE_VOLTAGE, PID_ABSOLUTE_ENGINE_LOAD,
    PID_AIR_FUEL_EQUIV_RATIO, PID_RELATIVE_THROTTLE_POS, PID_AMBIENT_TEMP,
    PID_ABSOLUTE_THROTTLE_POS_B, PID_ABSOLUTE_THROTTLE_POS_C,
    PID_ACC_PEDAL_POS_D, PID_ACC_PEDAL_POS_E, PID_ACC_PEDAL_POS_F,
    PID_COMMANDED_THROTTLE_ACTUATOR, PID_TIME_WITH_MIL,
    PID_TIME_SINCE_CODES_CLEARED, PID_ETHANOL_FUEL,
    PID_HYBRID_BATTERY_PERCENTAGE, PID_ENGINE_OIL_TEMP,
    PID_FUEL_INJECTION_TIMING, PID_ENGINE_FUEL_RATE,
    PID_ENGINE_TORQUE_DEMANDED, PID_ENGINE_TORQUE_PERCENTAGE,
    PID_ENGINE_REF_TORQUE,
)
from .hexcodec import hex_byte, hex_word


def _tdiv(a, b):
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _percent(d):
    """Byte scaled 0..255 -> 0..100."""
    return hex_byte(d) * 100 // 255


def _temp(d):
    """Standard temperature formula: A - 40 -> degC."""
    return hex_byte(d) - 40


def _fuel_trim(d):
    return _tdiv((hex_byte(d) - 128) * 100, 128)


def _torque_pct(d):
    return hex_byte(d) - 125


def _catalyst_temp(d):
    return hex_word(d) // 10 - 40


# PID -> (name, formula_fn, unit)
PIDS = {
    PID_ENGINE_LOAD:              ("Engine Load",            _percent,                         "%"),
    PID_COOLANT_TEMP:             ("Coolant Temp",           _temp,                            "°C"),
    PID_SHORT_TERM_FUEL_TRIM_1:   ("Short Fuel Trim B1",     _fuel_trim,                       "%"),
    PID_LONG_TERM_FUEL_TRIM_1:    ("Long Fuel Trim B1",      _fuel_trim,                       "%"),
    PID_SHORT_TERM_FUEL_TRIM_2:   ("Short Fuel Trim B2",     _fuel_trim,                       "%"),
    PID_LONG_TERM_FUEL_TRIM_2:    ("Long Fuel Trim B2",      _fuel_trim,                       "%"),
    PID_FUEL_PRESSURE:            ("Fuel Pressure",          lambda d: hex_byte(d) * 3,        "kPa"),
    PID_INTAKE_MAP:               ("Intake MAP",             hex_byte,                         "kPa"),
    PID_RPM:                      ("RPM",                    lambda d: hex_word(d) >> 2,       "rpm"),
    PID_SPEED:                    ("Speed",                  hex_byte,                         "km/h"),
    PID_TIMING_ADVANCE:           ("Timing Advance",         lambda d: hex_byte(d) // 2 - 64,  "°"),
    PID_INTAKE_TEMP:              ("Intake Air Temp",        _temp,                            "°C"),
    PID_MAF_FLOW:                 ("MAF",                    lambda d: hex_word(d) // 100,     "g/s"),
    PID_THROTTLE:                 ("Throttle",               _percent,                         "%"),
    PID_RUNTIME:                  ("Run Time",               hex_word,                         "s"),
    PID_DISTANCE_WITH_MIL:        ("Distance with MIL",      hex_word,                         "km"),
    PID_FUEL_RAIL_PRESSURE:       ("Fuel Rail Pressure",     hex_word,                         "kPa"),
    PID_COMMANDED_EGR:            ("Commanded EGR",          _percent,                         "%"),
    PID_EGR_ERROR:                ("EGR Error",              _fuel_trim,                       "%"),
    PID_COMMANDED_EVAPORATIVE_PURGE: ("Evap Purge",          _percent,                         "%"),
    PID_FUEL_LEVEL:               ("Fuel Level",             _percent,                         "%"),
    PID_WARMS_UPS:                ("Warm-ups",               hex_byte,                         ""),
    PID_DISTANCE:                 ("Distance since Clear",   hex_word,                         "km"),
    PID_EVAP_SYS_VAPOR_PRESSURE:  ("Evap Vapor Pressure",    lambda d: hex_word(d) >> 2,       "Pa"),
    PID_BAROMETRIC:               ("Barometric",             hex_byte,                         "kPa"),
    PID_CATALYST_TEMP_B1S1:       ("Catalyst Temp B1S1",     _catalyst_temp,                   "°C"),
    PID_CATALYST_TEMP_B2S1:       ("Catalyst Temp B2S1",     _catalyst_temp,                   "°C"),
    PID_CATALYST_TEMP_B1S2:       ("Catalyst Temp B1S2",     _catalyst_temp,                   "°C"),
    PID_CATALYST_TEMP_B2S2:       ("Catalyst Temp B2S2",     _catalyst_temp,                   "°C"),
    PID_CONTROL_MODULE_VOLTAGE:   ("Module Voltage",         lambda d: hex_word(d) // 1000,    "V"),
    PID_ABSOLUTE_ENGINE_LOAD:     ("Absolute Load",          _percent,                         "%"),
    PID_AIR_FUEL_EQUIV_RATIO:     ("Air-Fuel Ratio",         lambda d: hex_word(d) * 200 // 65536, ""),
    PID_RELATIVE_THROTTLE_POS:    ("Relative Throttle",      _percent,                         "%"),
    PID_AMBIENT_TEMP:             ("Ambient Temp",           _temp,                            "°C"),
    PID_ABSOLUTE_THROTTLE_POS_B:  ("Throttle B",             _percent,                         "%"),
    PID_ABSOLUTE_THROTTLE_POS_C:  ("Throttle C",             _percent,                         "%"),
    PID_ACC_PEDAL_POS_D:          ("Pedal D",                _percent,                         "%"),
    PID_ACC_PEDAL_POS_E:          ("Pedal E",                _percent,                         "%"),
    PID_ACC_PEDAL_POS_F:          ("Pedal F",                _percent,                         "%"),
    PID_COMMANDED_THROTTLE_ACTUATOR: ("Throttle Actuator",   _percent,                         "%"),
    PID_TIME_WITH_MIL:            ("Time with MIL",          hex_word,                         "min"),
    PID_TIME_SINCE_CODES_CLEARED: ("Time since Clear",       hex_word,                         "min"),
    PID_ETHANOL_FUEL:             ("Ethanol",                _percent,                         "%"),
    PID_HYBRID_BATTERY_PERCENTAGE: ("Hybrid Battery",        _percent,                         "%"),
    PID_ENGINE_OIL_TEMP:          ("Oil Temp",               _temp,                            "°C"),
    PID_FUEL_INJECTION_TIMING:    ("Injection Timing",       lambda d: _tdiv(hex_word(d) - 26880, 128), "°"),
    PID_ENGINE_FUEL_RATE:         ("Fuel Rate",              lambda d: hex_word(d) // 20,      "L/h"),
    PID_ENGINE_TORQUE_DEMANDED:   ("Torque Demanded",        _torque_pct,                      "%"),
    PID_ENGINE_TORQUE_PERCENTAGE: ("Torque Actual",          _torque_pct,                      "%"),
    PID_ENGINE_REF_TORQUE:        ("Reference Torque",       hex_word,                         "Nm"),
}

# ── Default live data gauges for the GUI ──
# (name, pid, min_display, max_display, unit, fmt)
LIVE_PARAMS = [
    ("RPM",          PID_RPM,             0, 7000, "rpm",      "{:.0f}"),
    ("Speed",        PID_SPEED,           0, 220,  "km/h",     "{:.0f}"),
    ("Coolant",      PID_COOLANT_TEMP,  -40, 130,  "°C",  "{:.0f}"),
    ("Oil Temp",     PID_ENGINE_OIL_TEMP, -40, 150, "°C", "{:.0f}"),
    ("Engine Load",  PID_ENGINE_LOAD,     0, 100,  "%",        "{:.0f}"),
    ("Throttle",     PID_THROTTLE,        0, 100,  "%",        "{:.0f}"),
    ("Fuel Level",   PID_FUEL_LEVEL,      0, 100,  "%",        "{:.0f}"),
    ("Intake Temp",  PID_INTAKE_TEMP,   -40, 100,  "°C",  "{:.0f}"),
]


def decode(pid, payload):
    """Convert a PID's hex payload to its physical value.

    Unknown PIDs decode as a plain byte.
    """
    entry = PIDS.get(pid)
    if entry is None:
        return hex_byte(payload)
    _name, formula, _unit = entry
    return formula(payload)


def pid_name(pid):
    """Human-readable PID name, or "PID 0xNN"."""
    entry = PIDS.get(pid)
    return entry[0] if entry else f"PID 0x{pid:02X}"


def pid_unit(pid):
    entry = PIDS.get(pid)
    return entry[2] if entry else ""
