import argparse
import os
import sys
import threading

from macrorec.native import normalize_key_token
from macrorec.settings import load_settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="macrorec",
        description="Record global mouse/keyboard input to a macro script and play it back.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Settings file (default: $MACROREC_CONFIG or ~/.macrorec/config.json).",
    )
    sub = parser.add_subparsers(dest="command")

    gui = sub.add_parser("gui", help="Open the recorder window (default).")
    gui.add_argument("script", nargs="?", help="Script to play as soon as the window opens.")

    record = sub.add_parser("record", help="Record without the window until the stop key.")
    record.add_argument("output", help="Script file to write.")
    record.add_argument("--stop-key", default=None, help="Key that ends the recording (e.g. f8).")
    record.add_argument(
        "--sample-hz",
        type=int,
        default=None,
        help="Maximum pointer moves recorded per second, 0 for all.",
    )

    play = sub.add_parser("play", help="Play a script without the window.")
    play.add_argument("script", help="Script file to play.")
    play.add_argument("--loops", type=int, default=None, help="Number of times to play.")
    play.add_argument("--infinite", action="store_true", help="Loop until stopped.")
    play.add_argument("--stop-key", default=None, help="Key that aborts playback.")
    return parser


def _stop_key(args, settings):
    return normalize_key_token(args.stop_key) if args.stop_key else settings.stop_key


def _record(args, settings) -> int:
    from macrorec.global_screen import GlobalScreen
    from macrorec.recorder_core import MacroRecorder

    stop_key = _stop_key(args, settings)
    sample_hz = settings.move_sample_hz if args.sample_hz is None else max(0, args.sample_hz)
    done = threading.Event()
    failure = []

    def on_error(exc):
        failure.append(exc)
        done.set()

    screen = GlobalScreen.get_instance()
    screen.log_callback = print
    recorder = MacroRecorder(
        args.output,
        screen=screen,
        move_sample_hz=sample_hz,
        stop_key=stop_key,
        log_callback=print,
        error_callback=on_error,
        stop_callback=done.set,
    )
    if not recorder.start_recording():
        screen.shutdown(wait=False)
        return 1
    print(f"Press {stop_key} to stop recording.")
    try:
        while not done.wait(0.2):
            pass
    except KeyboardInterrupt:
        recorder.stop_recording()
    finally:
        screen.shutdown(wait=False)
    return 1 if failure else 0


def _play(args, settings) -> int:
    from macrorec.global_screen import GlobalScreen
    from macrorec.player_core import MacroPlayer

    loops = settings.loop_count if args.loops is None else max(1, args.loops)
    infinite = args.infinite or (args.loops is None and settings.loop_infinite)
    screen = GlobalScreen.get_instance()
    screen.log_callback = print
    player = MacroPlayer(screen=screen, log_callback=print, stop_key=_stop_key(args, settings))
    if not player.play(os.path.abspath(args.script), loop_count=loops, loop_infinite=infinite):
        return 1
    try:
        while not player.wait(0.2):
            pass
    except KeyboardInterrupt:
        player.stop()
        player.wait()
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings(args.config, log_callback=print)

    if args.command == "record":
        return _record(args, settings)
    if args.command == "play":
        return _play(args, settings)

    from macrorec.ui_qt.main_window import run

    script_path = getattr(args, "script", None)
    run(
        settings=settings,
        config_path=args.config,
        autoplay=os.path.abspath(script_path) if script_path else None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
