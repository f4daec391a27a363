"""Operator confirmation prompts.

Prompts are zenity question dialogs with Proceed / Cancel buttons. With
NOPROMPT set the message is logged instead and the run proceeds, except for
prompts marked unconditional (the final reboot prompt under REBOOTPROMPT).
"""

from __future__ import annotations

from steamos_repair.config.settings import RepairConfig
from steamos_repair.logging import LoggerFactory
from steamos_repair.storage.commands import run_command
from steamos_repair.storage.exceptions import PromptCancelled


log = LoggerFactory.for_system()

REBOOT_TITLE = "Action Successful"


def zenity_command(title: str, message: str) -> list[str]:
    return [
        "zenity",
        "--title",
        title,
        "--question",
        "--ok-label",
        "Proceed",
        "--cancel-label",
        "Cancel",
        "--no-wrap",
        "--text",
        message,
    ]


def confirm(title: str, message: str) -> bool:
    """Show the dialog; True when the operator chose Proceed."""
    result = run_command(zenity_command(title, message), check=False)
    confirmed = result.returncode == 0
    log.debug(f"Prompt {title!r}: confirmed={confirmed}")
    return confirmed


def prompt_step(
    config: RepairConfig,
    title: str,
    message: str,
    *,
    unconditional: bool = False,
) -> None:
    """Ask before a step; raise PromptCancelled on Cancel.

    Raises:
        PromptCancelled: If the operator chose Cancel
    """
    if config.noprompt and not unconditional:
        log.info(message)
        return
    if not confirm(title, message):
        raise PromptCancelled(title)


def prompt_reboot(config: RepairConfig, message: str) -> bool:
    """Offer to reboot (or power off) after a successful run.

    Returns:
        True if the power action should be taken
    """
    mode = "shutdown" if config.poweroff else "reboot"
    text = (
        f"{message}\n\nChoose Proceed to {mode} now, or Cancel to stay in the repair image."
    )
    try:
        prompt_step(config, REBOOT_TITLE, text, unconditional=config.rebootprompt)
    except PromptCancelled:
        log.info(f"Staying in the repair image, skipping {mode}")
        return False
    return True
