from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .errors import InvalidFormat, InvalidParameterType, SettingsError, UnknownParameter
from .flow.orchestrator import FlowSnapshot, FlowState, PersonalizationOrchestrator
from .generation.config import coerce
from .ingest import load_example_asset, read_image_file
from .logging_utils import RunLogger, configure_logging, create_logger
from .settings import FlowSettings, load_settings

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Turn a photo into a storybook illustration")
    parser.add_argument("photo", type=Path, nargs="?", help="Photo to personalize")
    parser.add_argument("--example", action="store_true", help="Use the bundled example photo")
    parser.add_argument("--config", type=Path, help="Path to a YAML or JSON settings file")
    parser.add_argument(
        "--set",
        dest="parameters",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a generation parameter (repeatable)",
    )
    parser.add_argument("--endpoint", type=str, help="Override the generation endpoint URL")
    parser.add_argument("--download", action="store_true", help="Download the finished page")
    parser.add_argument("--download-dir", type=Path, help="Override the download directory")
    parser.add_argument("--log-level", type=str, help="DEBUG, INFO, WARN or ERROR")
    return parser.parse_args(argv)


def _parse_parameters(pairs: List[str]) -> Dict[str, object]:
    parsed: Dict[str, object] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise InvalidParameterType(f"Expected KEY=VALUE, got {pair!r}")
        key = key.strip()
        parsed[key] = coerce(key, value)
    return parsed


def _describe_export(artifact) -> str:
    if artifact is None:
        return "export skipped"
    if artifact.path is not None:
        return f"saved {artifact.path}"
    return f"opened {artifact.source_url} externally"


def _progress_reporter(logger: RunLogger):
    last = {"state": None, "band": -1}

    def _report(snapshot: FlowSnapshot) -> None:
        if snapshot.state is not last["state"]:
            last["state"] = snapshot.state
            last["band"] = -1
            logger.log("FLOW", f"stage={snapshot.state.value}")
        if snapshot.state is FlowState.PROCESSING:
            band = snapshot.progress // 10
            if band > last["band"]:
                last["band"] = band
                logger.log("PROGRESS", f"{snapshot.progress}%", level="DEBUG" if snapshot.progress < 100 else "INFO")

    return _report


async def _run(args: argparse.Namespace, settings: FlowSettings, logger: RunLogger) -> int:
    flow = PersonalizationOrchestrator.from_settings(settings)
    flow.subscribe(_progress_reporter(logger))

    raw = load_example_asset() if args.example else read_image_file(args.photo)
    try:
        selection = await logger.timed(
            "INGEST",
            lambda sel: f"{sel.name} {sel.mime_type} bytes={sel.size}",
            flow.select_image(raw),
        )
    except InvalidFormat as exc:
        logger.log("INGEST", str(exc), level="ERROR")
        return EXIT_INVALID
    if selection is None:
        return EXIT_INVALID

    logger.log("REQUEST", f"endpoint={settings.endpoint.url} style={flow.config.style_name}")
    state = await flow.start_personalization()
    if state is not FlowState.RESULT or flow.result is None:
        logger.log("RESULT", flow.notice or "generation did not complete", level="ERROR")
        return EXIT_FAILED

    logger.log("RESULT", flow.result.remote_image_ref)
    print(flow.result.remote_image_ref)

    if args.download:
        artifact = await logger.timed(
            "EXPORT",
            _describe_export,
            flow.export_result(),
        )
        if artifact is None:
            logger.log("EXPORT", flow.notice or "export failed", level="WARN")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    if args.photo is None and not args.example:
        print("error: give a photo path or --example", file=sys.stderr)
        return EXIT_INVALID

    try:
        settings = load_settings(args.config) if args.config else FlowSettings()
        settings.apply_environment()
        settings.apply_overrides(
            endpoint_url=args.endpoint,
            download_dir=args.download_dir,
            log_level=args.log_level,
            parameters=_parse_parameters(args.parameters),
        )
    except (OSError, SettingsError, UnknownParameter, InvalidParameterType) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_INVALID

    configure_logging("DEBUG" if settings.logging.level == "DEBUG" else "WARN")
    logger = create_logger(
        settings.logging.level,
        settings.logging.log_file if settings.logging.to_file else None,
    )
    try:
        logger.log("BOOT", f"config={settings.path or '<defaults>'}")
        return asyncio.run(_run(args, settings, logger))
    except OSError as exc:
        logger.log("BOOT", f"cannot read input: {exc}", level="ERROR")
        return EXIT_INVALID
    finally:
        logger.close()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
