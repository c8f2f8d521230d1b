"""
AOI Defect Inspection
Command line entry point: inspect image files or run the network server.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from aoi_inspection import __version__
from aoi_inspection.config.paths import get_log_dir
from aoi_inspection.config.settings import load_settings
from aoi_inspection.errors import ConfigError
from aoi_inspection.server import InspectionServer, InspectionService
from aoi_inspection.storage import load_image
from aoi_inspection.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aoi-inspection",
                                     description="AOI visual defect inspection")
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    parser.add_argument('-c', '--config', help="JSON settings file")
    parser.add_argument('--log-level', help="Override the configured log level")
    parser.add_argument('--no-log-file', action='store_true', help="Log to stdout only")

    subparsers = parser.add_subparsers(dest='command', required=True)

    inspect_parser = subparsers.add_parser('inspect', help="Inspect image files")
    inspect_parser.add_argument('images', nargs='+', help="Image files to inspect")
    inspect_parser.add_argument('-r', '--reference', help="Reference (golden) image")
    inspect_parser.add_argument('-o', '--output', help="Output directory for CSV and images")
    inspect_parser.add_argument('--no-save', action='store_true', help="Do not write CSV or images")

    serve_parser = subparsers.add_parser('serve', help="Run trigger listener and REST API")
    serve_parser.add_argument('--host', help="Bind address")
    serve_parser.add_argument('--trigger-port', type=int, help="Trigger TCP port")
    serve_parser.add_argument('--api-port', type=int, help="REST API port")
    serve_parser.add_argument('--no-trigger', action='store_true', help="Disable the trigger listener")
    serve_parser.add_argument('--no-api', action='store_true', help="Disable the REST API")

    return parser


def run_inspect(service: InspectionService, images: List[str], save: bool) -> int:
    """Inspect files in order and print a batch summary; returns the exit code."""
    results = []
    for i, path in enumerate(images, 1):
        print(f"\nInspecting image {i}/{len(images)}: {path}")
        result = service.controller.inspect_file(path)
        print(result.get_summary())
        results.append(result)

        if save and result.success:
            service.image_saver.save_images(result)

    if save:
        csv_path = service.csv_writer.write_results(results, images)
        if csv_path is not None:
            print(f"\nResults written to {csv_path}")

    succeeded = [r for r in results if r.success]
    ok_count = sum(1 for r in succeeded if r.is_ok)
    ng_count = len(succeeded) - ok_count
    avg_time = sum(r.total_time for r in succeeded) / len(succeeded) if succeeded else 0.0

    print(f"\n{'=' * 50}")
    print("Batch Inspection Summary:")
    print(f"Total: {len(results)} | OK: {ok_count} | NG: {ng_count} | "
          f"Failed: {len(results) - len(succeeded)}")
    print(f"Average processing time: {avg_time:.2f} ms")
    print(f"{'=' * 50}")

    return 0 if len(succeeded) == len(results) else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(args.log_level or settings.log_level, log_to_file=not args.no_log_file,
                  log_dir=None if args.no_log_file else get_log_dir())
    logger.info(f"AOI inspection {__version__} starting ({args.command})")

    if args.command == 'inspect':
        if args.output:
            settings.output.csv_dir = str(Path(args.output) / "csv")
            settings.output.image_dir = str(Path(args.output) / "images")
        service = InspectionService.from_settings(settings)

        if args.reference:
            reference = load_image(args.reference)
            if reference is None:
                print(f"Error: could not load reference image {args.reference}", file=sys.stderr)
                return 2
            service.controller.set_reference_image(reference)

        return run_inspect(service, args.images, save=not args.no_save)

    server = settings.server
    if args.host:
        server.host = args.host
    if args.trigger_port is not None:
        server.trigger_port = args.trigger_port
    if args.api_port is not None:
        server.api_port = args.api_port
    if args.no_trigger:
        server.trigger_enabled = False
    if args.no_api:
        server.api_enabled = False

    InspectionServer(settings).run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
