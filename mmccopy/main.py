import argparse
import sys
from pathlib import Path

from mmccopy.__version__ import __version__
from mmccopy.config import settings
from mmccopy.domain import ProgressMode, TransferDirection
from mmccopy.logging import LoggerFactory, setup_logging
from mmccopy.services.transfer import STDIO_PATH, CopyRequest, copy_card
from mmccopy.storage.exceptions import (
    AmbiguousDeviceError,
    ConfigurationError,
    StorageError,
)
from mmccopy.storage.sizes import SIZE_SUFFIXES, parse_size

PROG = "mmccopy"


def _size_arg(text):
    try:
        return parse_size(text)
    except ValueError as error:
        raise argparse.ArgumentTypeError(str(error)) from error


def _epilog():
    lines = [
        "The [path] specifies the location of the image to copy to or from",
        "the memory card. If it is unspecified or '-', the image will either",
        "be read from stdin (-w) or written to stdout (-r).",
        "",
        "Examples:",
        "",
        "Write the file sdcard.img to an automatically detected SD Card:",
        f"  {PROG} sdcard.img",
        "",
        "Read the master boot record (512 bytes @ offset 0) from /dev/sdc:",
        f"  {PROG} -r -s 512 -o 0 -d /dev/sdc mbr.img",
        "",
        "Offset and size may be specified with the following suffixes:",
    ]
    lines.extend(f"  {suffix:>3}  {multiple}" for suffix, multiple in SIZE_SUFFIXES)
    return "\n".join(lines)


def build_parser():
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Copy a raw image to or from a memory card",
        epilog=_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-d", dest="device", metavar="DEVICE", help="Device file for the memory card")
    parser.add_argument("-n", dest="numeric", action="store_true", help="Report numeric progress")
    parser.add_argument(
        "-o",
        dest="offset",
        type=_size_arg,
        default=0,
        metavar="OFFSET",
        help="Offset from the beginning of the memory card",
    )
    # Progress is the default; -p is accepted for older scripts.
    parser.add_argument("-p", dest="progress", action="store_true", help="Report progress (default)")
    parser.add_argument("-q", dest="quiet", action="store_true", help="Quiet")
    parser.add_argument(
        "-r", dest="read_from_card", action="store_true", help="Read from the memory card"
    )
    parser.add_argument(
        "-w",
        dest="read_from_card",
        action="store_false",
        help="Write to the memory card (default)",
    )
    parser.add_argument(
        "-s", dest="size", type=_size_arg, default=0, metavar="SIZE", help="Amount to read/write"
    )
    parser.add_argument("-v", dest="version", action="store_true", help="Print out the version and exit")
    parser.add_argument(
        "-y", dest="accept", action="store_true", help="Accept automatically found memory card"
    )
    parser.add_argument(
        "--max-card-size",
        type=_size_arg,
        default=None,
        metavar="SIZE",
        help="Largest device considered a memory card during detection",
    )
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable per-chunk trace output")
    parser.add_argument("--log-dir", type=Path, default=None, help="Write log files to this directory")
    parser.set_defaults(read_from_card=False)
    parser.add_argument("path", nargs="?", default=STDIO_PATH, help="Image file, or '-' for stdin/stdout")
    return parser


def request_from_args(args):
    if args.quiet and args.numeric:
        raise ConfigurationError("pick either -n or -q, but not both.")

    if args.quiet:
        progress_mode = ProgressMode.QUIET
    elif args.numeric:
        progress_mode = ProgressMode.NUMERIC
    else:
        progress_mode = ProgressMode.HUMAN

    max_card_size = args.max_card_size
    if max_card_size is None:
        max_card_size = settings.get_int(
            "max_card_size_bytes", settings.DEFAULT_MAX_CARD_SIZE
        )

    return CopyRequest(
        device_path=args.device,
        data_path=args.path,
        offset=args.offset,
        size=args.size,
        direction=(
            TransferDirection.READ_FROM_CARD
            if args.read_from_card
            else TransferDirection.WRITE_TO_CARD
        ),
        auto_accept=args.accept,
        progress_mode=progress_mode,
        max_card_size_bytes=max_card_size,
        mount_table=settings.get_setting(
            "mount_table_path", settings.DEFAULT_MOUNT_TABLE_PATH
        ),
    )


def report_error(error, stream=None):
    stream = stream if stream is not None else sys.stderr
    if isinstance(error, AmbiguousDeviceError):
        stream.write("Too many possible memory cards found: \n")
        for candidate in error.candidates:
            stream.write(f"  {candidate.path}\n")
        stream.write("Pick one and specify it explicitly on the commandline.\n")
        return
    stream.write(f"{PROG}: {error}\n")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"{PROG} version {__version__}", file=sys.stderr)
        return 0

    log_dir = args.log_dir or settings.get_setting("log_dir")
    setup_logging(
        debug=args.debug,
        trace=args.trace,
        log_dir=Path(log_dir) if log_dir else None,
    )
    log = LoggerFactory.for_system()

    try:
        request = request_from_args(args)
        log.debug(f"Request: {request}")
        copy_card(request)
    except StorageError as error:
        log.debug(f"Fatal {type(error).__name__}: {error}")
        report_error(error)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
