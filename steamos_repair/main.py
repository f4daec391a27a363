import argparse
import os
import signal
import time
from pathlib import Path

from steamos_repair.actions.power import perform_power_action
from steamos_repair.config.settings import RepairConfig, load_config
from steamos_repair.domain.models import Target
from steamos_repair.logging import LoggerFactory, setup_logging
from steamos_repair.repair.cleanup import ExitGuard
from steamos_repair.repair.orchestrator import RepairContext, execute_plan
from steamos_repair.repair.plan import build_plan
from steamos_repair.storage.exceptions import (
    DeviceNotFoundError,
    PromptCancelled,
    RepairError,
    VerificationError,
)
from steamos_repair.ui.prompt import prompt_reboot, prompt_step


log = LoggerFactory.for_system()

HELP_TEXT = """\
This tool can be used to reinstall or repair your SteamOS installation

Possible targets:
    all : permanently destroy all data on the device, and (re)install SteamOS.
    system : repair/reinstall SteamOS on the device's system partitions, preserving user data partitions.
    home : reformat the devices /home and /var partitions, removing games and user data from the device.
    chroot : chroot into to the primary SteamOS partition set.
    sanitize : perform an NVME sanitize operation."""

IMAGING_ERROR_MESSAGE = "Imaging error occurred, see above and restart process."

# (title, message) shown before each destructive target.
CONFIRMATIONS = {
    Target.ALL: (
        "Wipe Device & Install SteamOS",
        "This action will wipe and (re)install SteamOS on this device.\n"
        "This will permanently destroy all data on your device.\n\n"
        "This cannot be undone.\n\n"
        "Choose Proceed only if you wish to wipe and reinstall this device.",
    ),
    Target.SYSTEM: (
        "Repair SteamOS",
        "This action will repair the SteamOS installation on the device, while "
        "attempting to preserve your games and personal content.\n"
        "System customizations may be lost.\n\n"
        "Choose Proceed to reinstall SteamOS on your device.",
    ),
    Target.HOME: (
        "Delete local user data",
        "This action will reformat the home partitions on your device.\n"
        "This will destroy downloaded games and all personal content, including "
        "system configuration.\n\n"
        "This action cannot be undone.\n\n"
        "Choose Proceed to reformat all user home partitions.",
    ),
    Target.SANITIZE: (
        "Clear and sanitize NVME disk",
        "This action will kick off an NVME sanitize on the primary drive, "
        "irrevocably deleting all user data.\n\n"
        "This action cannot be undone.\n\n"
        "Choose Proceed only if you want to remove all data from the current "
        "device's primary drive.",
    ),
}

COMPLETION_MESSAGES = {
    Target.ALL: "Reimaging complete.",
    Target.SYSTEM: "SteamOS reinstall complete.",
    Target.HOME: "User partitions have been reformatted.",
}


def halt_forever():
    """Block until the operator power-cycles the device."""
    while True:
        time.sleep(3600)


def is_root():
    return os.geteuid() == 0


def _raise_system_exit(signum, frame):
    raise SystemExit(128 + signum)


def install_signal_handlers():
    # Turn termination into SystemExit so the exit guard still drains.
    signal.signal(signal.SIGTERM, _raise_system_exit)
    signal.signal(signal.SIGHUP, _raise_system_exit)


def print_help():
    print(HELP_TEXT)


def run_target(config: RepairConfig, target: Target, guard: ExitGuard) -> int:
    confirmation = CONFIRMATIONS.get(target)
    if confirmation is not None:
        prompt_step(config, *confirmation)

    plan = build_plan(target)
    context = execute_plan(plan, RepairContext(config=config, guard=guard))

    if target is Target.CHROOT:
        return context.chroot_status or 0

    message = COMPLETION_MESSAGES.get(target)
    if message is None:
        return 0
    log.success(message)
    # Release mounts and the source freeze before the machine goes down.
    guard.drain()
    if prompt_reboot(config, message):
        perform_power_action(config.poweroff)
        return 0
    return 1


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="steamos-repair",
        description="Reinstall or repair a SteamOS installation",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable trace output")
    parser.add_argument("--log-dir", type=Path, default=None, help="Directory for log files")
    parser.add_argument(
        "target",
        nargs="?",
        default=None,
        help="all, system, home, chroot or sanitize",
    )
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    target = Target.parse(args.target)

    if not is_root():
        print_help()
        log.error("Please run as root.")
        return 1
    if target is Target.HELP:
        print_help()
        return 0

    config = load_config()
    if not os.path.exists(config.disk.path):
        log.error(str(DeviceNotFoundError(config.disk.path)))
        halt_forever()
        return DeviceNotFoundError.exit_code

    install_signal_handlers()
    log.info(f"Starting {target.value} on {config.disk.path}")
    with ExitGuard() as guard:
        try:
            return run_target(config, target, guard)
        except PromptCancelled as error:
            log.info(str(error))
            return error.exit_code
        except VerificationError as error:
            guard.drain()
            log.error(str(error))
            halt_forever()
            return error.exit_code
        except RepairError as error:
            guard.drain()
            log.error(str(error))
            log.error(IMAGING_ERROR_MESSAGE)
            halt_forever()
            return error.exit_code
        except Exception as error:
            guard.drain()
            log.exception(f"Unexpected error: {type(error).__name__}: {error}")
            log.error(IMAGING_ERROR_MESSAGE)
            halt_forever()
            return RepairError.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
