"""
Shorts automator: batch short clips into ~1 minute compilations with random
background music, then schedule them on YouTube at staggered times.

Usage:
    python main.py compile [--input input] [--music tracks] [--output output]
    python main.py upload [--output output] [--dry-run]
    python main.py run
"""

from dotenv import load_dotenv
load_dotenv()

import os
import sys
import logging
import argparse

from compiler import (
    INPUT_DIR, OUTPUT_DIR, TEMP_DIR,
    GroupCompilationError, PreconditionError, compile_all,
)
from grouper import TARGET_GROUP_SECONDS
from media_gateway import FFmpegGateway, MediaTransformError
from music_manager import MUSIC_DIR
from scheduler import UploadScheduler
from upload_progress import PROGRESS_FILE, ProgressLedger
from uploader import CredentialsError, YouTubeUploader

LOG_DIR = os.getenv("LOG_DIR", "logs")

logger = logging.getLogger("main")


def setup_logging(log_dir: str = LOG_DIR, level: int = logging.INFO):
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(log_dir, "automator.log"), encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
    # googleapiclient logs every discovery fetch at INFO
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


def run_compile(args) -> int:
    try:
        compile_all(
            FFmpegGateway(),
            input_dir=args.input,
            music_dir=args.music,
            output_dir=args.output,
            temp_dir=args.temp,
            target=args.target,
        )
    except PreconditionError as e:
        logger.error(f"❌ {e}")
        return 1
    except (MediaTransformError, GroupCompilationError) as e:
        logger.error(f"❌ Compilation aborted: {e}")
        return 1
    except OSError as e:
        logger.error(f"❌ Compilation aborted (filesystem): {e}")
        return 1
    return 0


def run_upload(args, uploader=None) -> int:
    uploader = uploader or YouTubeUploader()
    if not args.dry_run:
        try:
            uploader.connect()
        except CredentialsError as e:
            logger.error(f"❌ {e}")
            return 1

    scheduler = UploadScheduler(uploader, ProgressLedger(args.progress), output_dir=args.output)
    report = scheduler.run(dry_run=args.dry_run)
    return 0 if report.ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compile short clips into music-backed compilations and schedule their upload.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def add_output(p):
        p.add_argument("--output", default=OUTPUT_DIR, help=f"Compilation folder (default: {OUTPUT_DIR})")

    def add_compile_args(p):
        p.add_argument("--input", default=INPUT_DIR, help=f"Source clip folder (default: {INPUT_DIR})")
        p.add_argument("--music", default=MUSIC_DIR, help=f"Background track folder (default: {MUSIC_DIR})")
        p.add_argument("--temp", default=TEMP_DIR, help=f"Workspace root (default: {TEMP_DIR})")
        p.add_argument(
            "--target", type=float, default=TARGET_GROUP_SECONDS,
            help=f"Target compilation length in seconds (default: {TARGET_GROUP_SECONDS:g})",
        )

    def add_upload_args(p):
        p.add_argument("--progress", default=PROGRESS_FILE, help=f"Progress file (default: {PROGRESS_FILE})")
        p.add_argument("--dry-run", action="store_true", help="Print the schedule without uploading")

    p_compile = sub.add_parser("compile", help="Build compilations from the input clips")
    add_compile_args(p_compile)
    add_output(p_compile)

    p_upload = sub.add_parser("upload", help="Schedule compilations on YouTube")
    add_upload_args(p_upload)
    add_output(p_upload)

    p_run = sub.add_parser("run", help="compile, then upload")
    add_compile_args(p_run)
    add_upload_args(p_run)
    add_output(p_run)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    if args.command == "compile":
        return run_compile(args)
    if args.command == "upload":
        return run_upload(args)

    status = run_compile(args)
    if status != 0:
        return status
    return run_upload(args)


if __name__ == "__main__":
    sys.exit(main())
