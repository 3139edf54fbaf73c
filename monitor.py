#!/usr/bin/env python3
"""
=============================================================================
COGNITIVE LOAD MONITOR — COMMAND-LINE ENTRY POINT (monitor.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
Runs the cognitive load engine on this machine's webcam and microphone (or on
a video file / stream) and logs every evaluation tick: the 0-100 score, the
classification, and whether the facial metrics are real or heuristic.

Face-lost/recovered, classification changes, crisis and sustained-distress
events are logged as they happen. Press Ctrl+C to stop.

HOW TO RUN:
-----------
  python monitor.py                       # webcam + microphone
  python monitor.py --video clip.mp4      # analyze a recorded video
  python monitor.py --no-voice --duration 60

CONFIGURATION:
--------------
  - Settings come from the .env file next to this script and config.py.
  - Without a face landmarker model, vision runs on pointer heuristics; without
    a Vosk model, voice tracks vocal energy only. Both are reported at start.
=============================================================================
"""

# ---------------------------------------------------------------------------
# Step 1: Load environment variables from .env (before importing config)
# ---------------------------------------------------------------------------
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

import argparse
import logging
import sys
import time

import config
from cognitive_load_engine import CognitiveLoadEngine
from utils.video_source_handler import VideoSourceHandler, VideoSourceType

logger = logging.getLogger("monitor")


def _open_video(path: str) -> VideoSourceHandler:
    handler = VideoSourceHandler()
    is_stream = path.split("://", 1)[0].lower() in ("rtsp", "rtmp", "http", "https")
    source_type = VideoSourceType.STREAM if is_stream else VideoSourceType.FILE
    if not handler.initialize_source(source_type, path):
        raise SystemExit(f"Error: could not open video source {path!r}")
    return handler


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Run the cognitive load engine and log each tick",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python monitor.py
  python monitor.py --video session.mp4 --no-voice
  python monitor.py --duration 120 --log-level DEBUG
        """,
    )
    parser.add_argument("--video", default=None, help="Video file or stream URL (default: webcam)")
    parser.add_argument("--no-voice", action="store_true", help="Do not open the microphone")
    parser.add_argument("--duration", type=float, default=None, help="Stop after N seconds")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level (default from LOG_LEVEL)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config.warn_missing_config()

    video = _open_video(args.video) if args.video else None
    engine = CognitiveLoadEngine()
    engine.on_tick(lambda p: logger.info(
        "score=%d class=%s heuristic=%s tension=%.1f energy=%.1f wpm=%.0f",
        p["score"], p["classification"], p["isHeuristic"],
        p["metrics"]["tension"], p["metrics"]["vocalEnergy"], p["metrics"]["speechRate"],
    ))
    engine.on_face_lost(lambda: logger.warning("Face lost"))
    engine.on_face_recovered(lambda: logger.info("Face recovered"))
    engine.on_classification_changed(lambda new, old: logger.info("State: %s -> %s", old.value, new.value))
    engine.on_crisis(lambda p: logger.warning("CRISIS: score %d", p["score"]))
    engine.on_sustained_distress(lambda metric: logger.warning("Sustained %s", metric))

    engine.start(video_source=video, enable_voice=not args.no_voice)
    deadline = time.monotonic() + args.duration if args.duration else None
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.5)
    except KeyboardInterrupt:
        print()
    finally:
        engine.close()
        if video is not None:
            video.release()
    return 0


if __name__ == "__main__":
    sys.exit(main())
