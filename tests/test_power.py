"""Tests for actions/power.py."""

from unittest.mock import patch

from steamos_repair.actions import power


def test_reboot(fake_commands):
    power.reboot_system()

    assert fake_commands.commands == [["systemctl", "reboot"]]


def test_poweroff(fake_commands):
    power.poweroff_system()

    assert fake_commands.commands == [["systemctl", "poweroff"]]


def test_perform_power_action_selects_poweroff(fake_commands):
    power.perform_power_action(poweroff=True)
    power.perform_power_action(poweroff=False)

    assert fake_commands.commands == [["systemctl", "poweroff"], ["systemctl", "reboot"]]


@patch("steamos_repair.actions.power.shutil.which", return_value=None)
def test_missing_systemctl(mock_which):
    result = power.reboot_system()

    assert result.returncode == 1
    assert result.stderr == "systemctl missing"
