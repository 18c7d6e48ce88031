"""adcycle 로테이션 CLI.

Usage:
    python scripts/run_rotation.py stats  [--session default]
    python scripts/run_rotation.py reset  [--session default]
    python scripts/run_rotation.py reset-flags [--preroll] [--reward]
    python scripts/run_rotation.py watch https://example.com/game --pub-id ca-pub-xxx [--config rotation.json]

Environment variables:
    ADCYCLE_STORAGE_DIR  -- 세션 파일 디렉터리 (default: session_data)
    LOG_LEVEL            -- 콘솔 로그 레벨 (default: INFO)

watch 는 Ctrl+C 로 종료 (리스너/타이머 정리 후 브라우저 종료).
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

_root = str(Path(__file__).resolve().parent.parent)
sys.path.insert(0, _root)

from dotenv import load_dotenv  # noqa: E402
load_dotenv(Path(_root) / ".env")

from loguru import logger  # noqa: E402

from adcycle.config import RotationSettings  # noqa: E402
from adcycle.logging_config import setup_logging  # noqa: E402
from adcycle.service import init  # noqa: E402
from adcycle.storage import FileSessionStorage  # noqa: E402
from adcycle.tracking import INITIAL_PREROLL_FLAG, INITIAL_REWARD_FLAG, TrackingStore  # noqa: E402


def _storage(args, settings: RotationSettings) -> FileSessionStorage:
    return FileSessionStorage(args.storage_dir or settings.storage_dir, session_id=args.session)


def cmd_stats(args, settings: RotationSettings) -> int:
    tracking = TrackingStore(_storage(args, settings)).get()
    if tracking is None:
        print("(no tracking record)")
        return 0
    print(json.dumps(tracking.as_dict(), indent=2))
    return 0


def cmd_reset(args, settings: RotationSettings) -> int:
    store = TrackingStore(_storage(args, settings))
    store.reset()
    record = store.ensure()
    logger.info("Tracking reset: {}", record.to_json())
    return 0


def cmd_reset_flags(args, settings: RotationSettings) -> int:
    store = TrackingStore(_storage(args, settings))
    both = not args.preroll and not args.reward
    if args.preroll or both:
        store.clear_flag(INITIAL_PREROLL_FLAG)
        logger.info("Initial preroll flag cleared")
    if args.reward or both:
        store.clear_flag(INITIAL_REWARD_FLAG)
        logger.info("Initial reward flag cleared")
    return 0


def _load_options(args) -> dict:
    options: dict = {}
    if args.config:
        options = json.loads(Path(args.config).read_text(encoding="utf-8"))
    options.setdefault("platform", "ads")
    if args.pub_id:
        options["pubId"] = args.pub_id
    return options


async def _watch(args, settings: RotationSettings) -> int:
    from playwright.async_api import async_playwright

    from adcycle.playwright_host import PlaywrightPageHost

    options = _load_options(args)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=args.headless)
        page = await browser.new_page()
        host = PlaywrightPageHost(page)
        await host.attach()
        await page.goto(args.url)
        await host.refresh_fragment()

        rotation = init(options, host=host, storage=_storage(args, settings), settings=settings)
        logger.info("Watching {} (Ctrl+C to stop)", args.url)
        try:
            await stop_event.wait()
        finally:
            rotation.cleanup()
            stats = rotation.get_tracking_stats()
            if stats is not None:
                logger.info("Final tracking: {}", stats.to_json())
            await browser.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AdSense vignette/preroll rotation")
    parser.add_argument("--session", default="default", help="session id")
    parser.add_argument("--storage-dir", default=None, help="session storage directory")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="print tracking record")
    sub.add_parser("reset", help="reset tracking record")

    flags = sub.add_parser("reset-flags", help="clear one-shot initial preroll/reward flags")
    flags.add_argument("--preroll", action="store_true")
    flags.add_argument("--reward", action="store_true")

    watch = sub.add_parser("watch", help="run the rotation against a live page")
    watch.add_argument("url")
    watch.add_argument("--pub-id", default=None)
    watch.add_argument("--config", default=None, help="JSON init options file")
    watch.add_argument("--headless", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(to_file=args.command == "watch")
    settings = RotationSettings()

    if args.command == "stats":
        return cmd_stats(args, settings)
    if args.command == "reset":
        return cmd_reset(args, settings)
    if args.command == "reset-flags":
        return cmd_reset_flags(args, settings)
    return asyncio.run(_watch(args, settings))


if __name__ == "__main__":
    sys.exit(main())
