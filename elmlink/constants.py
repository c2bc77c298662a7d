"""ELM327 / OBD-II constants - commands, PIDs, timing, buffer sizes."""

# ── Link control (Tool -> adapter) ──
CMD_SOFT_RESET   = "ATZ\r"
CMD_ECHO_OFF     = "ATE0\r"
CMD_HEADERS_OFF  = "ATH0\r"
LINK_SETUP_CMDS  = (CMD_ECHO_OFF, CMD_HEADERS_OFF)

# ── OBD-II service modes ──
MODE_CURRENT_DATA = 0x01

CMD_CLEAR_DTC = "04\r"
CMD_READ_VIN  = "0902\r"

# ── Response markers ──
PID_RESPONSE    = "41 "
DTC_RESPONSE    = "43"
VIN_HEADER      = "0: 49 02 01"
VIN_HEADER_BYTES = 3
PROMPT          = b"\r>"
BUSY_MARKER     = b"..."

# ECU error tokens, in classification priority order
ERR_UNABLE  = "UNABLE"
ERR_ERROR   = "ERROR"
ERR_TIMEOUT = "TIMEOUT"
ERR_NO_DATA = "NO DATA"

# ── Peripheral ioctl requests ──
IOCTL_READ_TIMEOUT = 0x10000000
IOCTL_RESET        = 0x20000000
IOCTL_UTC_TIME     = 0x30000000

UTC_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.0000Z"

# ── Mode 01 PIDs ──
PID_ENGINE_LOAD              = 0x04
PID_COOLANT_TEMP             = 0x05
PID_SHORT_TERM_FUEL_TRIM_1   = 0x06
PID_LONG_TERM_FUEL_TRIM_1    = 0x07
PID_SHORT_TERM_FUEL_TRIM_2   = 0x08
PID_LONG_TERM_FUEL_TRIM_2    = 0x09
PID_FUEL_PRESSURE            = 0x0A
PID_INTAKE_MAP               = 0x0B
PID_RPM                      = 0x0C
PID_SPEED                    = 0x0D
PID_TIMING_ADVANCE           = 0x0E
PID_INTAKE_TEMP              = 0x0F
PID_MAF_FLOW                 = 0x10
PID_THROTTLE                 = 0x11
PID_RUNTIME                  = 0x1F
PID_DISTANCE_WITH_MIL        = 0x21
PID_FUEL_RAIL_PRESSURE       = 0x23
PID_COMMANDED_EGR            = 0x2C
PID_EGR_ERROR                = 0x2D
PID_COMMANDED_EVAPORATIVE_PURGE = 0x2E
PID_FUEL_LEVEL               = 0x2F
PID_WARMS_UPS                = 0x30
PID_DISTANCE                 = 0x31
PID_EVAP_SYS_VAPOR_PRESSURE  = 0x32
PID_BAROMETRIC               = 0x33
PID_CATALYST_TEMP_B1S1       = 0x3C
PID_CATALYST_TEMP_B2S1       = 0x3D
PID_CATALYST_TEMP_B1S2       = 0x3E
PID_CATALYST_TEMP_B2S2       = 0x3F
PID_CONTROL_MODULE_VOLTAGE   = 0x42
PID_ABSOLUTE_ENGINE_LOAD     = 0x43
PID_AIR_FUEL_EQUIV_RATIO     = 0x44
PID_RELATIVE_THROTTLE_POS    = 0x45
PID_AMBIENT_TEMP             = 0x46
PID_ABSOLUTE_THROTTLE_POS_B  = 0x47
PID_ABSOLUTE_THROTTLE_POS_C  = 0x48
PID_ACC_PEDAL_POS_D          = 0x49
PID_ACC_PEDAL_POS_E          = 0x4A
PID_ACC_PEDAL_POS_F          = 0x4B
PID_COMMANDED_THROTTLE_ACTUATOR = 0x4C
PID_TIME_WITH_MIL            = 0x4D
PID_TIME_SINCE_CODES_CLEARED = 0x4E
PID_ETHANOL_FUEL             = 0x52
PID_HYBRID_BATTERY_PERCENTAGE = 0x5B
PID_ENGINE_OIL_TEMP          = 0x5C
PID_FUEL_INJECTION_TIMING    = 0x5D
PID_ENGINE_FUEL_RATE         = 0x5E
PID_ENGINE_TORQUE_DEMANDED   = 0x61
PID_ENGINE_TORQUE_PERCENTAGE = 0x62
PID_ENGINE_REF_TORQUE        = 0x63

# Support bitmap: 8 banks of 0x20 PIDs, 4 bitmap bytes each
PID_BANK_COUNT = 8
PID_BANK_SIZE  = 0x20
PID_BANK_BYTES = 4

# ── Timing ──
TIMEOUT_SHORT_MS     = 1000    # link control / single-line replies
TIMEOUT_LONG_MS      = 10000   # multi-frame replies, busy-marker extension
READ_PID_DELAY       = 0.020   # 20ms settle between PID write and read
VIN_RETRY_DELAY      = 0.100   # 100ms between VIN attempts
POLL_TIMEOUT         = 0.010   # 10ms per short channel read
RESET_PULSE          = 0.050   # 50ms DTR low during link reset
RESET_SETTLE         = 1.0     # 1s for the adapter to boot after reset

# ── Retry counts ──
MAX_RESET_RETRIES    = 10
MAX_PROBE_RETRIES    = 5
MAX_VIN_RETRIES      = 2
MAX_DTC_PAGES        = 6
MAX_DTC_CODES        = 6
MAX_TRANSPORT_FAILURES = 3

# ── Response buffer capacities (bytes) ──
COMMAND_BUFFER_SIZE  = 64
PID_BUFFER_SIZE      = 64
DTC_BUFFER_SIZE      = 128
VIN_BUFFER_SIZE      = 128
CLEAR_BUFFER_SIZE    = 32

# ── Serial link ──
LINK_BAUDRATE = 115200

# ── Trip aggregation thresholds ──
HIGH_SPEED_THRESHOLD = 120.0   # km/h
IDLE_SPEED_THRESHOLD = 1.0     # km/h

# Device identifier for the built-in simulator
DEMO_DEVICE = "Demo"
