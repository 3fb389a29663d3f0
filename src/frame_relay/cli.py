"""
Headless entry point.

    frame-relay run       capture once, wait for the result
    frame-relay loop      keep cycling until Ctrl-C or the server goes away
    frame-relay health    print the server queue status
"""
import argparse
import logging
import sys
from typing import List, Optional

from .capture import open_default_source
from .config import RelaySettings
from .controller import RunController
from .orchestrator import IterationOrchestrator

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Suppress per-request noise from the HTTP stack
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send camera frames through a ComfyUI workflow")
    parser.add_argument("command", choices=["run", "loop", "health"], help="What to do")
    parser.add_argument("--server", default=None,
                        help="ComfyUI base URL (default: $COMFYUI_URL or http://127.0.0.1:8188)")
    parser.add_argument("--workflow", default=None,
                        help="Workflow JSON in API format (default: built-in img2img graph)")
    parser.add_argument("--camera", type=int, default=None, help="Camera index")
    parser.add_argument("--capture-dir", default=None, help="Where captured frames are kept")
    parser.add_argument("--log-level", default=None, help="Logging level")
    return parser


def settings_from_args(args: argparse.Namespace) -> RelaySettings:
    settings = RelaySettings.from_env()
    overrides = {
        "server_url": args.server,
        "workflow_path": args.workflow,
        "camera_device": args.camera,
        "capture_dir": args.capture_dir,
        "log_level": args.log_level,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        settings = RelaySettings(**{**settings.model_dump(), **overrides})
    return settings


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    configure_logging(settings.log_level)

    # Health checks never capture, so the camera stays closed
    source = None if args.command == "health" else open_default_source(settings.camera_device)
    orchestrator = IterationOrchestrator(settings, source)
    controller = RunController(orchestrator)

    try:
        if args.command == "health":
            message = orchestrator.check_health()
            print(message)
            return 0 if message.startswith("Server OK") else 1

        if args.command == "run":
            controller.start_single_run()
        else:
            controller.start_loop()

        try:
            while not controller.wait_idle(timeout=0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted, finishing the current cycle")
            controller.stop_loop()
            controller.wait_idle()

        status = orchestrator.status.status
        print(status)
        return 0 if status.startswith("Done") else 1
    finally:
        if source is not None:
            source.close()
        orchestrator.transport.close()


if __name__ == "__main__":
    sys.exit(main())
