import argparse
import sys
from pathlib import Path

from iso_remaster.__version__ import __version__
from iso_remaster.config.settings import BuildConfig
from iso_remaster.logging import get_logger, setup_logging
from iso_remaster.services.build import build_image
from iso_remaster.storage.exceptions import RemasterError


def build_parser():
    parser = argparse.ArgumentParser(
        prog="iso-remaster",
        description="Inject an unattended-setup file into an installation image "
        "and re-master it as a BIOS + UEFI bootable image",
    )
    parser.add_argument("source", type=Path, help="Source installation image (.iso)")
    parser.add_argument("output", type=Path, help="Path of the image to write")
    parser.add_argument(
        "-a",
        "--artifact",
        type=Path,
        default=None,
        help="File to inject (default: autounattend.xml next to this tool)",
    )
    parser.add_argument(
        "-t", "--tool", type=Path, default=None, help="Path to oscdimg"
    )
    parser.add_argument("-l", "--label", default=None, help="Volume label")
    parser.add_argument(
        "--scratch-root", type=Path, default=None, help="Directory for staging areas"
    )
    parser.add_argument(
        "--copier", choices=["robocopy", "rsync", "shutil"], default=None
    )
    parser.add_argument("--mounter", choices=["powershell", "loop"], default=None)
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable trace output")
    parser.add_argument("--log-dir", type=Path, default=None, help="Log directory")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    log = get_logger(source="cli", tags=["cli"])

    config = BuildConfig.from_settings(
        scratch_root=args.scratch_root,
        copy_backend=args.copier,
        mount_backend=args.mounter,
        volume_label=args.label,
    )

    try:
        result = build_image(
            args.source,
            args.output,
            artifact=args.artifact,
            mastering_tool=args.tool,
            config=config,
        )
    except RemasterError as error:
        log.error(str(error))
        return 1

    log.success(
        f"Wrote {result.output_image} ({result.size_bytes} bytes, "
        f"sha256 {result.sha256}) in {result.elapsed_seconds:.1f}s"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
