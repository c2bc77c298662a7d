#!/usr/bin/env python3
"""ELM Link - OBD-II Diagnostic Tool for ELM327 adapters.

Flet 0.80+ GUI over the elmlink session engine, with a simulated adapter.
"""

import logging
import threading
import time

import flet as ft
import serial.tools.list_ports

from elmlink.channel import ChannelError
from elmlink.constants import DEMO_DEVICE, LINK_BAUDRATE
from elmlink.devices import open_device
from elmlink.formulas import LIVE_PARAMS
from elmlink.session import DiagnosticSession
from elmlink.telemetry import TripStats, poll_sample

VERSION = "1.0"

LIVE_INTERVAL = 0.5   # seconds between live data rounds

# ── Palette ──
BG       = "#0d1117"
PANEL    = "#161b22"
PANEL2   = "#1c2333"
ACCENT   = "#2f81f7"
GREEN    = "#00c853"
RED      = "#ff1744"
YELLOW   = "#ffd600"
TEXT     = "#e6edf3"
DIM      = "#7d8590"
BORDER   = "#30363d"

log = logging.getLogger("elmlink.app")


def main(page: ft.Page):
    page.title = "ELM Link"
    page.bgcolor = BG
    page.theme_mode = ft.ThemeMode.DARK
    page.theme = ft.Theme(color_scheme_seed=ACCENT)
    page.window.width = 820
    page.window.height = 740
    page.window.min_width = 700
    page.window.min_height = 600
    page.padding = 0
    page.spacing = 0

    # ── State ──
    state = {"connected": False, "live_running": False}
    session = [None]   # mutable ref to the current DiagnosticSession
    trip = [TripStats()]
    gauges = {}        # name -> (bar, label)
    trip_labels = {}   # summary key -> label

    # ══════════════════════════════════════
    #  HELPERS
    # ══════════════════════════════════════

    log_field = ft.TextField(
        value="", multiline=True, read_only=True,
        min_lines=20, text_size=12, color=GREEN,
        bgcolor=BG, border_color=BORDER, border_radius=6,
        text_style=ft.TextStyle(font_family="Menlo"),
        expand=True,
    )

    def safe_update():
        try:
            page.update()
        except RuntimeError:
            # page already torn down
            pass

    def ui_log(msg):
        log.info(msg)
        ts = time.strftime("%H:%M:%S")
        log_field.value = (log_field.value + "\n" if log_field.value else "") + f"[{ts}] {msg}"
        safe_update()

    def button(label, color, fg, width, on_click=None, height=36):
        return ft.Button(content=label, bgcolor=color, color=fg,
                         width=width, height=height, disabled=True,
                         on_click=on_click,
                         style=ft.ButtonStyle(shape=ft.RoundedRectangleBorder(radius=6)))

    # ══════════════════════════════════════
    #  HEADER
    # ══════════════════════════════════════

    demo_badge = ft.Container(
        ft.Text("DEMO", size=11, weight=ft.FontWeight.BOLD, color=BG),
        bgcolor=YELLOW, border_radius=4,
        padding=ft.Padding.symmetric(vertical=3, horizontal=10),
        visible=False,
    )

    header = ft.Container(
        ft.Row([
            ft.Text("ELM Link", size=22, weight=ft.FontWeight.BOLD, color=ACCENT),
            ft.Text("OBD-II Scanner for ELM327 adapters", size=12, color=DIM),
            ft.Container(expand=True),
            demo_badge,
        ], vertical_alignment=ft.CrossAxisAlignment.CENTER),
        bgcolor=PANEL,
        padding=ft.Padding.symmetric(vertical=10, horizontal=18),
        border=ft.Border.only(bottom=ft.BorderSide(1, BORDER)),
    )

    # ══════════════════════════════════════
    #  CONNECTION PANEL
    # ══════════════════════════════════════

    ports = [p.device for p in serial.tools.list_ports.comports()]
    ports.append(DEMO_DEVICE)

    port_dd = ft.Dropdown(
        options=[ft.dropdown.Option(p) for p in ports],
        value=ports[0], width=260, dense=True,
        bgcolor=PANEL2, border_color=BORDER, border_radius=6,
        text_size=13, color=TEXT,
    )

    btn_connect = ft.Button(
        content="Connect", bgcolor=GREEN, color=BG,
        width=130, height=38,
        style=ft.ButtonStyle(shape=ft.RoundedRectangleBorder(radius=6)),
    )

    conn_panel = ft.Container(
        ft.Row([
            ft.Text("Port", size=12, color=DIM, width=50),
            port_dd,
            ft.Text(f"{LINK_BAUDRATE} baud", size=12, color=DIM),
            ft.Container(expand=True),
            btn_connect,
        ], vertical_alignment=ft.CrossAxisAlignment.CENTER, spacing=8),
        bgcolor=PANEL, border_radius=8, padding=16,
        border=ft.Border.all(1, BORDER),
        margin=ft.Margin.only(left=12, right=12, top=10, bottom=4),
    )

    # ══════════════════════════════════════
    #  VEHICLE INFO BAR
    # ══════════════════════════════════════

    info_label = ft.Text("Not connected", size=12, color=DIM,
                         font_family="Menlo")

    vehicle_info = ft.Container(
        info_label,
        bgcolor=PANEL, border_radius=6,
        padding=ft.Padding.symmetric(vertical=8, horizontal=16),
        border=ft.Border.all(1, BORDER),
        margin=ft.Margin.symmetric(horizontal=12, vertical=4),
    )

    # ══════════════════════════════════════
    #  TAB: TROUBLE CODES
    # ══════════════════════════════════════

    dtc_list = ft.ListView(spacing=0, expand=True, auto_scroll=False)
    dtc_status = ft.Text("", size=13, color=DIM, italic=True)
    dtc_data = []

    def _refresh_dtc_list():
        dtc_list.controls.clear()
        if not dtc_data:
            dtc_list.controls.append(ft.Container(
                ft.Text("No trouble codes read yet", size=13, color=DIM, italic=True,
                        text_align=ft.TextAlign.CENTER),
                padding=30,
            ))
        for i, dtc in enumerate(dtc_data):
            dtc_list.controls.append(ft.Container(
                ft.Row([
                    ft.Text(dtc.sae, size=14, weight=ft.FontWeight.BOLD,
                            color=RED, font_family="Menlo", width=70),
                    ft.Text(dtc.description, size=13, color=TEXT, expand=True),
                    ft.Text(str(dtc), size=12, color=DIM, font_family="Menlo",
                            width=60, text_align=ft.TextAlign.RIGHT),
                ], spacing=12, vertical_alignment=ft.CrossAxisAlignment.CENTER),
                bgcolor=BG if i % 2 == 0 else PANEL2, border_radius=4,
                padding=ft.Padding.symmetric(vertical=10, horizontal=14),
            ))
        safe_update()

    def read_dtcs(e):
        if not state["connected"]:
            return

        def _do():
            s = session[0]
            if s is None:
                return
            ui_log("Reading trouble codes...")
            codes = s.read_dtc()
            dtc_data[:] = codes
            if codes:
                dtc_status.value = f"{len(codes)} code(s) stored"
                dtc_status.color = RED
            else:
                dtc_status.value = "No codes stored"
                dtc_status.color = GREEN
            _refresh_dtc_list()

        threading.Thread(target=_do, daemon=True).start()

    def clear_dtcs(e):
        if not state["connected"]:
            return

        def _do():
            s = session[0]
            if s is None:
                return
            s.clear_dtc()
            dtc_data.clear()
            dtc_status.value = "Clear sent, read again to verify"
            dtc_status.color = YELLOW
            _refresh_dtc_list()

        threading.Thread(target=_do, daemon=True).start()

    btn_read = button("Read Codes", ACCENT, BG, 140, read_dtcs)
    btn_clear = button("Clear Codes", RED, TEXT, 140, clear_dtcs)

    dtc_header = ft.Container(
        ft.Row([
            ft.Text("Code", size=12, weight=ft.FontWeight.BOLD, color=DIM, width=70),
            ft.Text("Description", size=12, weight=ft.FontWeight.BOLD, color=DIM, expand=True),
            ft.Text("Raw", size=12, weight=ft.FontWeight.BOLD, color=DIM,
                    width=60, text_align=ft.TextAlign.RIGHT),
        ], spacing=12),
        padding=ft.Padding.symmetric(vertical=6, horizontal=14),
        border=ft.Border.only(bottom=ft.BorderSide(1, BORDER)),
    )

    _refresh_dtc_list()

    dtc_panel = ft.Column([
        dtc_header,
        dtc_list,
        ft.Divider(height=1, color=BORDER),
        ft.Row([btn_read, btn_clear, ft.Container(expand=True), dtc_status],
               vertical_alignment=ft.CrossAxisAlignment.CENTER, spacing=8),
    ], spacing=0, expand=True)

    # ══════════════════════════════════════
    #  TAB: LIVE DATA
    # ══════════════════════════════════════

    gauge_rows = ft.Column(spacing=0, scroll=ft.ScrollMode.AUTO, expand=True)
    live_status = ft.Text("", size=12, color=DIM, italic=True)

    def _build_gauges(s):
        gauges.clear()
        gauge_rows.controls.clear()
        for name, pid, mn, mx, unit, fmt in LIVE_PARAMS:
            supported = s.is_pid_supported(pid)
            bar = ft.ProgressBar(value=0, bgcolor=PANEL2, color=ACCENT,
                                 bar_height=14, border_radius=4, expand=True)
            val = ft.Text(f"--- {unit}" if supported else "n/a", size=14,
                          weight=ft.FontWeight.BOLD, font_family="Menlo",
                          color=TEXT if supported else DIM, width=120,
                          text_align=ft.TextAlign.RIGHT)
            gauges[name] = (bar, val)
            gauge_rows.controls.append(ft.Container(
                ft.Row([ft.Text(name, size=13, color=DIM, width=120), bar, val],
                       spacing=12, vertical_alignment=ft.CrossAxisAlignment.CENTER),
                padding=ft.Padding.symmetric(vertical=8, horizontal=12),
                border=ft.Border.only(bottom=ft.BorderSide(1, BORDER)),
            ))

    def _live_loop():
        s = session[0]
        while s is not None and state["connected"] and state["live_running"]:
            for name, val, unit, formatted, ratio in s.read_live_values():
                if name in gauges:
                    bar, lbl = gauges[name]
                    bar.value = ratio
                    bar.color = RED if ratio > 0.85 else (YELLOW if ratio > 0.7 else ACCENT)
                    lbl.value = f"{formatted} {unit}"

            trip[0].update(poll_sample(s))
            for key, value in trip[0].summary().items():
                trip_labels[key].value = str(value)

            safe_update()
            time.sleep(LIVE_INTERVAL)

        state["live_running"] = False
        btn_live_start.disabled = not state["connected"]
        btn_live_stop.disabled = True
        live_status.value = "Stopped"
        safe_update()

    def start_live(e):
        if not state["connected"]:
            return
        state["live_running"] = True
        btn_live_start.disabled = True
        btn_live_stop.disabled = False
        live_status.value = "Polling..."
        safe_update()
        threading.Thread(target=_live_loop, daemon=True).start()

    def stop_live(e):
        state["live_running"] = False

    btn_live_start = button("Start", GREEN, BG, 100, start_live, height=32)
    btn_live_stop = button("Stop", RED, TEXT, 100, stop_live, height=32)

    live_panel = ft.Column([
        gauge_rows,
        ft.Divider(height=1, color=BORDER),
        ft.Row([btn_live_start, btn_live_stop, ft.Container(expand=True), live_status],
               vertical_alignment=ft.CrossAxisAlignment.CENTER, spacing=8),
    ], spacing=8, expand=True)

    # ══════════════════════════════════════
    #  TAB: TRIP
    # ══════════════════════════════════════

    trip_col = ft.Column(spacing=0, scroll=ft.ScrollMode.AUTO, expand=True)
    units = {"Avg Speed": "km/h", "Max Speed": "km/h", "Avg RPM": "rpm",
             "Avg Oil Temp": "°F", "Acceleration": "km/h/s",
             "Idle Time": "s", "Idle Stretch": "s", "High Speed Time": "s"}

    for i, key in enumerate(TripStats().summary()):
        lbl = ft.Text("---", size=14, weight=ft.FontWeight.BOLD,
                      font_family="Menlo", color=TEXT, width=120,
                      text_align=ft.TextAlign.RIGHT)
        trip_labels[key] = lbl
        trip_col.controls.append(ft.Container(
            ft.Row([
                ft.Text(key, size=13, color=DIM, expand=True),
                lbl,
                ft.Text(units[key], size=12, color=DIM, width=60),
            ], vertical_alignment=ft.CrossAxisAlignment.CENTER),
            bgcolor=BG if i % 2 == 0 else PANEL2,
            border_radius=4,
            padding=ft.Padding.symmetric(vertical=8, horizontal=12),
        ))

    def reset_trip(e):
        trip[0] = TripStats()
        for lbl in trip_labels.values():
            lbl.value = "---"
        safe_update()

    btn_trip_reset = button("Reset Trip", ACCENT, BG, 120, reset_trip, height=32)

    trip_panel = ft.Column([
        trip_col,
        ft.Divider(height=1, color=BORDER),
        ft.Row([btn_trip_reset], spacing=8),
    ], spacing=8, expand=True)

    # ══════════════════════════════════════
    #  TAB: LOG
    # ══════════════════════════════════════

    log_panel = ft.Column([log_field], expand=True)

    # ══════════════════════════════════════
    #  TAB SYSTEM
    # ══════════════════════════════════════

    panels = [dtc_panel, live_panel, trip_panel, log_panel]
    tab_names = ["Trouble Codes", "Live Data", "Trip", "Log"]

    content_area = ft.Container(
        content=panels[0],
        bgcolor=PANEL,
        border_radius=ft.BorderRadius.only(
            top_right=8, bottom_left=8, bottom_right=8),
        border=ft.Border.all(1, BORDER),
        padding=12,
        expand=True,
    )

    tab_btns = []

    def switch_tab(e):
        idx = int(e.control.data)
        content_area.content = panels[idx]
        for i, tab in enumerate(tab_btns):
            tab.bgcolor = ACCENT if i == idx else PANEL2
            tab.content.color = TEXT if i == idx else DIM
        page.update()

    for i, name in enumerate(tab_names):
        tab_btns.append(ft.Container(
            ft.Text(name, size=13, weight=ft.FontWeight.BOLD,
                    color=TEXT if i == 0 else DIM),
            bgcolor=ACCENT if i == 0 else PANEL2,
            border_radius=ft.BorderRadius.only(top_left=6, top_right=6),
            padding=ft.Padding.symmetric(vertical=10, horizontal=20),
            on_click=switch_tab,
            data=str(i),
            ink=True,
        ))

    tabs_section = ft.Container(
        ft.Column([ft.Row(tab_btns, spacing=2), content_area], spacing=0, expand=True),
        margin=ft.Margin.symmetric(horizontal=12, vertical=4),
        expand=True,
    )

    # ══════════════════════════════════════
    #  STATUS BAR
    # ══════════════════════════════════════

    status_dot = ft.Text("●", size=14, color=RED)
    status_label = ft.Text("Disconnected", size=12, color=DIM)

    statusbar = ft.Container(
        ft.Row([
            status_dot, status_label,
            ft.Container(expand=True),
            ft.Text(f"v{VERSION}", size=11, color=DIM),
        ], vertical_alignment=ft.CrossAxisAlignment.CENTER, spacing=6),
        bgcolor=PANEL,
        padding=ft.Padding.symmetric(vertical=6, horizontal=14),
        border=ft.Border.only(top=ft.BorderSide(1, BORDER)),
    )

    # ══════════════════════════════════════
    #  CONNECT / DISCONNECT
    # ══════════════════════════════════════

    action_btns = [btn_read, btn_clear, btn_live_start, btn_trip_reset]

    def _set_connected(connected):
        state["connected"] = connected
        btn_connect.content = "Disconnect" if connected else "Connect"
        btn_connect.bgcolor = RED if connected else GREEN
        btn_connect.color = TEXT if connected else BG
        btn_connect.disabled = False
        for b in action_btns:
            b.disabled = not connected
        if not connected:
            state["live_running"] = False
            btn_live_stop.disabled = True
            info_label.value = "Not connected"
            info_label.color = DIM
            demo_badge.visible = False
        safe_update()

    def _detach_session():
        s, session[0] = session[0], None
        return s

    def on_state_change(new_state):
        if new_state == "connected":
            status_dot.color = GREEN
            status_label.value = f"Connected | {port_dd.value}"
        elif new_state == "disconnected":
            status_dot.color = RED
            status_label.value = "Disconnected"
            if state["connected"]:
                _set_connected(False)
            # release the port held by a lost adapter
            stale = _detach_session()
            if stale:
                threading.Thread(target=stale.close, daemon=True).start()
        elif new_state == "connecting":
            status_dot.color = YELLOW
            status_label.value = "Initializing adapter..."
        safe_update()

    def do_connect():
        port = port_dd.value
        btn_connect.disabled = True
        btn_connect.content = "Connecting..."
        safe_update()

        def _do_connect():
            stale = _detach_session()
            if stale:
                stale.close()
            ui_log(f"Opening {port}...")
            try:
                channel = open_device(port)
            except ChannelError as ex:
                ui_log(f"Connection failed: {ex}")
                _set_connected(False)
                return

            s = DiagnosticSession(channel, on_log=ui_log, on_state_change=on_state_change)
            result = s.init()
            if not result.ok:
                ui_log(f"ECU not responding (stage {result.failed_stage.value})")
                s.close()
                _set_connected(False)
                return

            session[0] = s
            vin = s.read_vin() or "unknown"
            info_label.value = f"VIN: {vin}   PIDs: {len(s.supported_pids())}"
            info_label.color = TEXT
            demo_badge.visible = port == DEMO_DEVICE
            _build_gauges(s)
            _set_connected(True)

        threading.Thread(target=_do_connect, daemon=True).start()

    def do_disconnect():
        state["live_running"] = False

        def _do():
            s = _detach_session()
            if s:
                s.close()
            _set_connected(False)
            ui_log("Disconnected")

        threading.Thread(target=_do, daemon=True).start()

    def toggle_connect(e):
        if state["connected"]:
            do_disconnect()
        else:
            do_connect()

    btn_connect.on_click = toggle_connect

    # ══════════════════════════════════════
    #  ASSEMBLE
    # ══════════════════════════════════════

    page.add(ft.Column([
        header,
        conn_panel,
        vehicle_info,
        tabs_section,
        statusbar,
    ], spacing=0, expand=True))

    ui_log("ELM Link ready")
    ui_log(f"Select a port and click Connect, or use '{DEMO_DEVICE}' without hardware")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ft.run(main)
