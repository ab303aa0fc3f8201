#!/usr/bin/env python
"""
Upload an FRA measurement file from the command line.

Drives the same upload state machine as the dashboard, printing progress
and the server's manifest.

Usage:
    PYTHONPATH=.
    python scripts/upload_file.py readings.csv --api-base http://localhost:8000/api/v1
"""

import argparse
import asyncio
import json
import sys

from api.uploads.models import UploadManifest
from upload_client.controller import UploadController, UploadPhase, UploadState
from upload_client.transport import SelectedFile


def _print_progress(state: UploadState) -> None:
    if state.phase == UploadPhase.UPLOADING:
        print(f"\rUploading {state.selected_file.name}: {state.progress_percent:3d}%", end="", flush=True)


def _print_manifest(manifest: UploadManifest) -> None:
    print()
    print(json.dumps(manifest.model_dump(), indent=2))


def _print_notice(level: str, message: str) -> None:
    stream = sys.stderr if level in ("warning", "error") else sys.stdout
    print(f"\n[{level}] {message}", file=stream)


async def run(path: str, api_base: str, timeout: float) -> int:
    controller = UploadController(
        api_base,
        on_upload_complete=_print_manifest,
        on_state_change=_print_progress,
        on_notice=_print_notice,
        timeout=timeout,
    )
    try:
        if not controller.select(SelectedFile.from_path(path)):
            return 2
        await controller.start_upload()
    finally:
        # Aborts the transfer if we were interrupted mid-upload
        await controller.aclose()

    return 0 if controller.state.phase == UploadPhase.COMPLETED else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Upload an FRA measurement file")
    parser.add_argument("path", help="File to upload (csv, txt, xlsx or xml)")
    parser.add_argument(
        "--api-base",
        default="http://localhost:8000/api/v1",
        help="API base URL (default: http://localhost:8000/api/v1)",
    )
    parser.add_argument("--timeout", type=float, default=60.0, help="Request timeout in seconds")
    args = parser.parse_args()

    try:
        return asyncio.run(run(args.path, args.api_base, args.timeout))
    except KeyboardInterrupt:
        print("\nUpload cancelled", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
