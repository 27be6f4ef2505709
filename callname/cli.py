"""Command line interface for generating and parsing recording filenames.

Usage:
  python -m callname generate --number +15551234567 --direction in
  python -m callname generate --number +15551234567 --template '{date:%Y-%m-%d}_{phone_number}'
  python -m callname parse '20220429_180249.123-0400_in_+15551234567.m4a'
"""

import argparse
import logging
import sys
import time
from typing import Optional, Sequence

from callname.config import Settings, get_settings
from callname.processors.filename_generator import OutputFilenameGenerator
from callname.telephony import SCHEME_TEL, Call, CallDetails, CallDirection, NoSubscriptions


_DIRECTIONS = {
    "in": CallDirection.INCOMING,
    "out": CallDirection.OUTGOING,
    "unknown": CallDirection.UNKNOWN,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="callname",
        description="Generate call recording filenames from a template, or parse timestamps back out of them.",
    )
    parser.add_argument("--template", help="Filename template (overrides FILENAME_TEMPLATE)")
    parser.add_argument("--timezone", help="IANA time zone for timestamps (default: system local)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a filename for a call")
    generate.add_argument("--number", action="append", default=[],
                          help="Phone number; repeat for conference participants")
    generate.add_argument("--name", help="Caller display name")
    generate.add_argument("--contact", help="Contact display name")
    generate.add_argument("--direction", choices=sorted(_DIRECTIONS), default="unknown")
    generate.add_argument("--time-ms", type=int, help="Call creation time in epoch milliseconds (default: now)")
    generate.add_argument("--blocking", action="store_true",
                          help="Allow blocking contact lookups for missing contact names")

    parse = subparsers.add_parser("parse", help="Parse the timestamp from a filename")
    parse.add_argument("filename")

    return parser


def _settings(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    overrides = {}
    if args.template is not None:
        overrides["filename_template"] = args.template
    if args.timezone is not None:
        overrides["timezone"] = args.timezone
    if overrides:
        # Revalidate so a bad time zone is reported like a bad environment variable
        settings = Settings(**{**settings.model_dump(), **overrides})
    return settings


def _build_call(args: argparse.Namespace) -> Call:
    creation_time = args.time_ms if args.time_ms is not None else int(time.time() * 1000)
    direction = _DIRECTIONS[args.direction]
    numbers = args.number

    def details(number: Optional[str], conference: bool = False) -> CallDetails:
        return CallDetails(
            creation_time_millis=creation_time,
            handle=f"{SCHEME_TEL}:{number}" if number else None,
            caller_display_name=args.name,
            contact_display_name=args.contact,
            direction=direction,
            is_conference=conference,
        )

    if len(numbers) <= 1:
        return Call(details(numbers[0] if numbers else None))

    parent = Call(details(None, conference=True))
    for number in numbers:
        parent.add_child(details(number))
    return parent


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = _settings(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "generate":
        generator = OutputFilenameGenerator(
            _build_call(args), settings=settings, subscriptions=NoSubscriptions()
        )
        filename = generator.update(args.blocking)
        print(filename.value)
        print(filename.redacted)
        return 0

    # The reverse parser only needs the template's structure, not a real call
    generator = OutputFilenameGenerator(
        Call(CallDetails(creation_time_millis=0)), settings=settings, subscriptions=NoSubscriptions()
    )
    timestamp = generator.parse_timestamp_from_filename(args.filename)
    if timestamp is None:
        print("No timestamp found", file=sys.stderr)
        return 1

    print(timestamp.isoformat())
    return 0
