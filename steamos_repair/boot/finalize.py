"""Boot configuration inside a partition set.

All commands run through steamos-chroot scoped to one partition set of the
target disk, so they see that set's root, EFI and var partitions plus the
shared ESP.
"""

from __future__ import annotations

from steamos_repair.config.settings import RepairConfig
from steamos_repair.domain.models import PartitionSet
from steamos_repair.logging import LoggerFactory
from steamos_repair.storage.commands import run_checked_command, run_interactive
from steamos_repair.storage.exceptions import BootConfigError, CommandError


log = LoggerFactory.for_boot()

CHROOT_TOOL = "steamos-chroot"


def _set_name(partset) -> str:
    return partset.value if isinstance(partset, PartitionSet) else str(partset)


def chroot_command(
    config: RepairConfig,
    partset,
    *argv: str,
    overlay: bool = False,
) -> list[str]:
    """Build a steamos-chroot invocation for `partset`.

    Without argv the result drops into an interactive shell.
    """
    command = [CHROOT_TOOL]
    if not overlay:
        command.append("--no-overlay")
    command.extend(["--disk", config.disk.path, "--partset", _set_name(partset)])
    if argv:
        command.append("--")
        command.extend(argv)
    return command


def finalization_commands(partset: PartitionSet) -> list[list[str]]:
    name = partset.value
    return [
        ["mkdir", "/efi/SteamOS"],
        ["mkdir", "-p", "/esp/SteamOS/conf"],
        ["steamos-partsets", "/efi/SteamOS/partsets"],
        [
            "steamos-bootconf",
            "create",
            "--image",
            name,
            "--conf-dir",
            "/esp/SteamOS/conf",
            "--efi-dir",
            "/efi",
            "--set",
            "title",
            name,
        ],
        ["grub-mkimage"],
        ["update-grub"],
    ]


def finalize_part(config: RepairConfig, partset: PartitionSet) -> None:
    """Write the boot configuration of a freshly imaged partition set.

    Raises:
        BootConfigError: If any step fails
    """
    log.info(f"Finalizing install part {partset.value}")
    for argv in finalization_commands(partset):
        try:
            run_checked_command(chroot_command(config, partset, *argv))
        except CommandError as error:
            raise BootConfigError(partset.value, str(error)) from error


def install_bootloader(config: RepairConfig) -> None:
    """Install the bootloader onto the ESP from partition set A."""
    log.info("Finalizing EFI system partition")
    try:
        run_checked_command(
            chroot_command(
                config,
                PartitionSet.A,
                "steamcl-install",
                "--flags",
                "restricted",
                "--force-extra-removable",
            )
        )
    except CommandError as error:
        raise BootConfigError(PartitionSet.A.value, str(error)) from error


def selected_image(config: RepairConfig) -> str:
    """Name of the partition set the bootloader will boot next."""
    output = run_checked_command(
        chroot_command(config, PartitionSet.A, "steamos-bootconf", "selected-image")
    )
    return output.strip()


def enter_chroot(config: RepairConfig) -> int:
    """Drop into an interactive chroot on the primary partition set."""
    partset = selected_image(config)
    if not partset:
        raise BootConfigError("?", "no selected image reported")
    log.info(f"Dropping into a chroot on the {partset} partition set.")
    log.info("You can make any needed changes here, and exit when done.")
    # TODO: the etc overlay dir may not exist yet on a fresh install, which
    # makes the overlay chroot fail.
    return run_interactive(chroot_command(config, partset, overlay=True))
