import argparse
from pathlib import Path

from lvm_provisioner.__version__ import __version__
from lvm_provisioner.config import settings
from lvm_provisioner.config.settings import ProvisionSettings
from lvm_provisioner.logging import LoggerFactory, setup_logging
from lvm_provisioner.services.provisioning import run_provisioning
from lvm_provisioner.storage.exceptions import (
    ProvisionError,
    ProvisionLockedError,
    StageFailedError,
)

EXIT_OK = 0
EXIT_STAGE_FAILED = 1
EXIT_LOCKED = 2


def build_parser():
    parser = argparse.ArgumentParser(
        description="Shrink the root partition and give the rest of the disk to LVM"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable trace output (device polling)")
    parser.add_argument(
        "--no-reboot",
        action="store_true",
        help="Restore the boot config but do not reboot (image testing)",
    )
    parser.add_argument("--log-dir", type=Path, default=None, help="Directory for log files")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    log = LoggerFactory.for_system()

    settings.load_settings()
    provision_settings = ProvisionSettings.load()
    log.debug(f"Settings: {provision_settings}")

    try:
        outcome = run_provisioning(provision_settings, reboot=not args.no_reboot)
    except ProvisionLockedError as error:
        log.error(str(error))
        return EXIT_LOCKED
    except StageFailedError as error:
        log.critical(str(error))
        if error.stage in ("surgery", "lvm"):
            log.critical("Partition table was modified; the disk needs manual inspection")
        return EXIT_STAGE_FAILED
    except ProvisionError as error:
        log.critical(f"Provisioning failed: {error}")
        return EXIT_STAGE_FAILED
    except OSError as error:
        log.critical(f"Provisioning failed outside any stage: {error}")
        return EXIT_STAGE_FAILED

    if outcome.skipped:
        log.info(f"Volume group {outcome.volume_group} already provisioned")
    else:
        log.success(
            f"Volume group {outcome.volume_group} created on {outcome.data_device}"
        )
    return EXIT_OK
