from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from cloud.api.client import DiagnosisHttpClient
from cloud.api.mock import MockDiagnosisApi
from device.capture import DeviceImageSource, OpenCVCamera
from device.config import WorkflowConfig, load_config
from device.notices import ConsoleNotifier
from device.render import render_state
from device.workflow import DiagnosisWorkflowController, ImageSourceKind


def parse_camera_source(value: str) -> int | str:
    try:
        return int(value)
    except ValueError:
        return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Classify an eye photo and show reference information for the result"
    )
    parser.add_argument(
        "--source",
        choices=[kind.value for kind in ImageSourceKind],
        default=ImageSourceKind.LIBRARY.value,
        help="pick an existing image or capture one with the camera",
    )
    parser.add_argument(
        "--image",
        default="",
        help="image to pick from the library (empty means the picker was dismissed)",
    )
    parser.add_argument(
        "--camera-source",
        default="0",
        help="OpenCV camera index or stream URL",
    )
    parser.add_argument(
        "--camera-warmup",
        type=int,
        default=2,
        help="number of frames to discard after opening the camera",
    )
    parser.add_argument(
        "--capture-dir",
        default="captures",
        help="directory where camera captures are written",
    )
    parser.add_argument(
        "--api",
        choices=["mock", "http"],
        default="http",
        help="remote services backend",
    )
    parser.add_argument("--config", default=None, help="path to a JSON config file")
    parser.add_argument("--classify-url", default=None, help="override classification service URL")
    parser.add_argument("--detail-url", default=None, help="override disease detail service URL")
    parser.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds")
    parser.add_argument(
        "--mock-prediction",
        default="normal",
        help="label returned by the mock classifier",
    )
    parser.add_argument(
        "--json", action="store_true", help="print the final workflow state as JSON"
    )
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def resolve_config(args: argparse.Namespace) -> WorkflowConfig:
    cfg = load_config(Path(args.config) if args.config else None)
    overrides = {
        "classify_url": args.classify_url,
        "detail_url": args.detail_url,
        "timeout": args.timeout,
    }
    return replace(cfg, **{key: value for key, value in overrides.items() if value is not None})


def build_api_client(
    args: argparse.Namespace, cfg: WorkflowConfig
) -> MockDiagnosisApi | DiagnosisHttpClient:
    if args.api == "http":
        return DiagnosisHttpClient(
            classify_url=cfg.classify_url, detail_url=cfg.detail_url, timeout=cfg.timeout
        )
    return MockDiagnosisApi(default_prediction=args.mock_prediction)


def build_image_source(args: argparse.Namespace) -> DeviceImageSource:
    camera = None
    if args.source == ImageSourceKind.CAMERA.value:
        camera = OpenCVCamera(
            source=parse_camera_source(args.camera_source),
            warmup_frames=args.camera_warmup,
        )
    return DeviceImageSource(
        library_path=Path(args.image) if args.image else None,
        camera=camera,
        capture_dir=Path(args.capture_dir),
    )


async def run_workflow(
    controller: DiagnosisWorkflowController, notifier: ConsoleNotifier, source: str
) -> bool:
    reported = len(notifier.history)
    image = await controller.acquire_image(source)
    if image is None:
        if len(notifier.history) == reported:
            print("[device] No image selected")
        return False
    print(f"[device] Uploading {image.filename}")
    prediction = await controller.classify()
    return prediction is not None


def run_demo(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(levelname)s [%(name)s] %(message)s",
        )

    try:
        cfg = resolve_config(args)
    except ValueError as exc:
        parser.error(str(exc))

    image_source = build_image_source(args)
    notifier = ConsoleNotifier()
    api_client = build_api_client(args, cfg)
    controller = DiagnosisWorkflowController(
        image_source,
        api_client,
        notifier=notifier,
        healthy_label=cfg.healthy_label,
        detail_labels=cfg.detail_labels,
    )

    try:
        completed = asyncio.run(run_workflow(controller, notifier, args.source))
    finally:
        image_source.close()
        if isinstance(api_client, DiagnosisHttpClient):
            api_client.close()

    state = controller.state
    if args.json:
        print(json.dumps(state.to_dict(), indent=2))
    else:
        print(render_state(state))
    return 0 if completed else 1


def main() -> None:
    raise SystemExit(run_demo())


if __name__ == "__main__":
    main()
