"""
CLI to run the live detection window on a webcam or a media file.
"""
from __future__ import annotations
import argparse
import logging
from annotator.config import Settings
from annotator.live import run_live_overlay

def main():
    p = argparse.ArgumentParser()
    p.add_argument("--camera", type=int, default=None, help="Camera index (default: CAMERA_INDEX)")
    p.add_argument("--file", default=None, help="Path to a video or image instead of the webcam")
    p.add_argument("--model", default=None, help="Detector weights (default: MODEL_NAME)")
    p.add_argument("--out", default=None, help="Directory for recordings (default: RECORDINGS_DIR)")
    args = p.parse_args()

    overrides = {}
    if args.model:
        overrides["MODEL_NAME"] = args.model
    if args.out:
        overrides["RECORDINGS_DIR"] = args.out
    settings = Settings(**overrides)
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.DEBUG))
    run_live_overlay(settings, camera_index=args.camera, file_path=args.file)

if __name__ == "__main__":
    main()
