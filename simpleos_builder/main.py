import argparse
import shutil
import sys
from pathlib import Path

from loguru import logger

from simpleos_builder.build.artifacts import ArtifactLocator
from simpleos_builder.build.pipeline import ImageLayout, create_build_graph, requested_outputs
from simpleos_builder.build.variants import ACCEPTED_VARIANTS, resolve
from simpleos_builder.config.settings import load_config
from simpleos_builder.domain.models import ArtifactKind
from simpleos_builder.exceptions import (
    BuilderError,
    ConfigurationError,
    ExternalToolNotFoundError,
    TargetFailedError,
)
from simpleos_builder.logging import LoggerFactory, setup_logging
from simpleos_builder.storage.fat32 import Fat32Reader
from simpleos_builder.storage.gpt import read_gpt
from simpleos_builder.vm.qemu import debug_launch, firmware_paths
from simpleos_builder.vm.virtualbox import start_vm


EXIT_OK = 0
EXIT_BUILD_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_TOOL_NOT_FOUND = 3
EXIT_INTERRUPTED = 130


def build_parser():
    parser = argparse.ArgumentParser(
        prog="simpleos-build",
        description="Build the SimpleOS boot image and run it in VirtualBox or QEMU",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Directory holding the bootloader and kernel crates (default: current directory)",
    )
    parser.add_argument("--settings", type=Path, help="JSON settings file")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable very verbose trace output")

    variant_help = f"Build variant: {', '.join(ACCEPTED_VARIANTS)} (default: debug)"
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_cmd = subparsers.add_parser("build", help="Build the raw disk image")
    build_cmd.add_argument("--variant", default="debug", help=variant_help)
    build_cmd.add_argument("-n", "--dry-run", action="store_true", help="Show what would be rebuilt")

    run_cmd = subparsers.add_parser("run", help="Build, convert to VDI and start the VirtualBox VM")
    run_cmd.add_argument("--variant", default="debug", help=variant_help)

    debug_cmd = subparsers.add_parser("debug", help="Build and start QEMU halted with GDB attached")
    debug_cmd.add_argument("--variant", default="debug", help=variant_help)
    debug_cmd.add_argument("--ovmf-dir", type=Path, help="Directory with OVMF_CODE.fd and OVMF_VARS.fd")
    debug_cmd.add_argument("--detach", action="store_true", help="Do not wait for the debugger to exit")

    inspect_cmd = subparsers.add_parser("inspect", help="Show the partition table and ESP contents")
    inspect_cmd.add_argument("--variant", default="debug", help=variant_help)

    subparsers.add_parser("clean", help="Remove every build output")

    clippy_cmd = subparsers.add_parser("clippy", help="Run cargo clippy on both crates")
    clippy_cmd.add_argument("--variant", default="debug", help=variant_help)
    return parser


def _build(config, variant, command, dry_run=False):
    layout = ImageLayout.for_variant(config, variant)
    graph = create_build_graph(config, variant)
    result = graph.build(requested_outputs(command, layout), dry_run=dry_run)
    if dry_run:
        for name in result.rebuilt:
            print(f"would rebuild: {name}")
        if result.up_to_date:
            print("up to date")
    return layout


def _inspect(layout):
    for path in (layout.image, layout.partition):
        if not path.exists():
            raise ConfigurationError(f"{path} does not exist; run 'build' first")
    header, partitions = read_gpt(layout.image)
    print(f"{layout.image}: disk {header.disk_guid}, usable LBA {header.first_usable_lba}-{header.last_usable_lba}")
    for partition in partitions:
        print(
            f"  #{partition.index} {partition.name} {partition.type_guid} "
            f"LBA {partition.first_lba}-{partition.last_lba} ({partition.sectors} sectors)"
        )
    reader = Fat32Reader(layout.partition)
    print(f"{layout.partition}: {reader.fs_type} label={reader.label} id={reader.volume_id:08X}")

    def walk(path):
        for entry in reader.scandir(path):
            child = f"{path.rstrip('/')}/{entry.name}"
            if entry.is_dir:
                print(f"  {child}/")
                walk(child)
            else:
                print(f"  {child} ({entry.size} bytes)")

    walk("/")


def run(args):
    """Execute a parsed command line. Errors propagate to :func:`main`."""
    log = LoggerFactory.for_system()
    variant = resolve(args.variant) if args.command != "clean" else None
    project_root = args.project_root.resolve()
    config = load_config(
        project_root,
        args.settings,
        ovmf_dir=getattr(args, "ovmf_dir", None),
    )
    setup_logging(debug=args.debug, trace=args.trace, log_dir=config.log_dir)

    if args.command == "clean":
        if config.target_dir.exists():
            shutil.rmtree(config.target_dir)
            log.info(f"Removed {config.target_dir}")
        else:
            log.info("Nothing to clean")
        return EXIT_OK

    log.debug(f"Project {project_root}, variant {variant.value} ({variant.tag})")

    if args.command == "clippy":
        locator = ArtifactLocator(config)
        for kind in (ArtifactKind.BOOTLOADER, ArtifactKind.KERNEL):
            locator.clippy(kind, variant)
        return EXIT_OK

    if args.command == "inspect":
        _inspect(ImageLayout.for_variant(config, variant))
        return EXIT_OK

    if args.command == "debug":
        firmware_paths(config)

    layout = _build(config, variant, args.command, dry_run=getattr(args, "dry_run", False))

    if args.command == "run":
        start_vm(layout.vdi, config)
    elif args.command == "debug":
        session = debug_launch(layout.image, layout.kernel_symbols, config)
        if args.detach:
            log.info(f"Emulator pid {session.emulator.pid}, debugger pid {session.debugger.pid}")
        else:
            session.wait()
            if session.emulator.poll() is None:
                session.emulator.terminate()
    return EXIT_OK


def exit_code_for(error):
    """Map a pipeline error to the process exit status."""
    if isinstance(error, TargetFailedError):
        error = error.error
    if isinstance(error, ExternalToolNotFoundError):
        return EXIT_TOOL_NOT_FOUND
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIG_ERROR
    return EXIT_BUILD_FAILED


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace)
    try:
        return run(args)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED
    except TargetFailedError as error:
        logger.error(f"Target {error.target} failed: {error.error}")
        return exit_code_for(error)
    except BuilderError as error:
        logger.error(str(error))
        return exit_code_for(error)


if __name__ == "__main__":
    sys.exit(main())
