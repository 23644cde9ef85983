"""Command line entry point: ``python -m gpioscope``."""

import argparse
import logging
import pathlib
import sys
from typing import List, Optional

from .data_model import SaveFormat
from .errors import ConnectionFailure, MalformedFile
from .sample_store import SampleStore
from . import waveform_codec

logger = logging.getLogger("gpioscope")


def _format_for(path: str, explicit: Optional[str]) -> SaveFormat:
    if explicit:
        return SaveFormat(explicit)
    return SaveFormat.VCD if pathlib.Path(path).suffix.lower() == ".vcd" else SaveFormat.TEXT


def _convert(args: argparse.Namespace) -> int:
    store = SampleStore()
    try:
        waveform_codec.load(store, args.input)
    except (MalformedFile, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    selection = None
    if args.start is not None or args.end is not None:
        start = args.start if args.start is not None else store.first_tick if not store.is_empty else 0
        end = args.end if args.end is not None else store.last_tick if not store.is_empty else 0
        selection = (start, end)

    written = waveform_codec.save(store, args.output, _format_for(args.output, args.format), selection)
    print(f"Wrote {written} records to {args.output}")
    return 0


def _capture(args: argparse.Namespace) -> int:
    # Qt is only needed for live capture
    from PySide6.QtCore import QCoreApplication, QTimer

    from .application.events import Event
    from .capture_scheduler import CaptureScheduler
    from .scope_controller import ScopeController
    from .settings_manager import SettingsManager

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)

    settings = SettingsManager().load_scope_settings()
    if args.host:
        settings.server_address = args.host
    if args.port:
        settings.server_port = args.port

    controller = ScopeController()
    controller.event_bus.subscribe(Event, lambda event: logger.debug("%s", event))
    controller.apply_settings(settings)
    if not controller.connect():
        print(f"Error: can't connect to pigpio at {controller.address}. Is pigpiod running?",
              file=sys.stderr)
        return 1

    scheduler = CaptureScheduler(controller)
    scheduler.connection_lost.connect(lambda message: app.quit())
    scheduler.start()
    QTimer.singleShot(int(args.seconds * 1000), app.quit)
    app.exec()
    scheduler.shutdown()

    # Drain what arrived since the last input pass
    controller.poll_input()
    controller.disconnect()

    written = controller.save(args.output, _format_for(args.output, args.format))
    print(f"Captured {written} transitions to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gpioscope", description="GPIO logic analyser for pigpio")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    convert = sub.add_parser("convert", help="Convert a .piscope text capture (e.g. to VCD)")
    convert.add_argument("input", help="Text capture to read")
    convert.add_argument("output", help="File to write (.vcd selects VCD)")
    convert.add_argument("--format", choices=[f.value for f in SaveFormat], help="Output format")
    convert.add_argument("--from", dest="start", type=int, help="First tick to keep (relative)")
    convert.add_argument("--to", dest="end", type=int, help="Last tick to keep (relative)")
    convert.set_defaults(func=_convert)

    capture = sub.add_parser("capture", help="Capture from a pigpio daemon without a GUI")
    capture.add_argument("output", help="File to write (.vcd selects VCD)")
    capture.add_argument("--seconds", type=float, default=10.0, help="Capture duration")
    capture.add_argument("--host", help="pigpio address (overrides settings)")
    capture.add_argument("--port", type=int, help="pigpio port (overrides settings)")
    capture.add_argument("--format", choices=[f.value for f in SaveFormat], help="Output format")
    capture.set_defaults(func=_capture)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    try:
        return args.func(args)
    except ConnectionFailure as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
