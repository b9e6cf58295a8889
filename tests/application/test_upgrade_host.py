"""Tests for the UpgradeHost sequence."""

import logging

import pytest

from conftest import FakeForum, make_target
from forumfleet.application.services.host_prober import PROBE_COMMAND, HostProber
from forumfleet.application.services.version_oracle import VersionOracle
from forumfleet.application.use_cases.upgrade_host import (
    RebootWaitSchedule,
    UpgradeHost,
)
from forumfleet.domain.errors import (
    AppUpgradeFailedError,
    CleanupFailedError,
    HostUnreachableAfterRebootError,
    InvalidTargetError,
    OsUpdateFailedError,
)

OS_UPDATE = "apt upgrade -y"
ROLLBACK = "apt-rollback last"
REBOOT = "reboot now"
UPDATE = "launcher rebuild app"
CLEANUP = "launcher cleanup"
OS_VERSION = "lsb_release -d"
OS_VERSION_FALLBACK = "cat /etc/os-release"


def _target(**commands):
    values = dict(
        os_update_cmd=OS_UPDATE,
        reboot_cmd=REBOOT,
        update_cmd=UPDATE,
        cleanup_cmd=CLEANUP,
        os_version_cmd=OS_VERSION,
        os_version_fallback_cmd=OS_VERSION_FALLBACK,
    )
    values.update(commands)
    return make_target(**values)


def _sequencer(remote, forum, progress, sleep, **schedule):
    return UpgradeHost(
        remote,
        VersionOracle(forum, remote),
        HostProber(remote),
        schedule=RebootWaitSchedule(**schedule) if schedule else None,
        progress=progress,
        sleep=sleep,
    )


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_full_sequence(self, remote, progress, sleep):
        forum = FakeForum(versions=["3.2.0", "3.2.1"])
        remote.outputs[OS_VERSION] = "Ubuntu 22.04.3 LTS\n"
        remote.outputs[CLEANUP] = "Deleted Images:\nTotal reclaimed space: 128.4 MB\n"
        use_case = _sequencer(remote, forum, progress, sleep)

        outcome = await use_case.execute(_target())

        assert outcome.host == "forum.example.com"
        assert outcome.before_app_version == "3.2.0"
        assert outcome.after_app_version == "3.2.1"
        assert outcome.before_os_version == "Ubuntu 22.04.3 LTS"
        assert outcome.after_os_version == "Ubuntu 22.04.3 LTS"
        assert outcome.reclaimed_space == "128.4 MB"
        assert outcome.os_updated is True
        assert outcome.server_rebooted is True

    @pytest.mark.asyncio
    async def test_steps_run_in_order_exactly_once(self, remote, forum, progress, sleep):
        use_case = _sequencer(remote, forum, progress, sleep)

        await use_case.execute(_target())

        assert remote.commands_run() == [
            OS_VERSION,
            OS_UPDATE,
            REBOOT,
            PROBE_COMMAND,
            UPDATE,
            OS_VERSION,
            CLEANUP,
        ]

    @pytest.mark.asyncio
    async def test_commands_go_to_ssh_address(self, remote, forum, progress, sleep):
        use_case = _sequencer(remote, forum, progress, sleep)

        await use_case.execute(_target(name="community", ssh_host="10.0.0.5"))

        assert {t for t, _ in remote.calls} == {"10.0.0.5"}

    @pytest.mark.asyncio
    async def test_unknown_versions_do_not_block(self, remote, progress, sleep):
        forum = FakeForum(fail_versions=True)
        remote.fail(OS_VERSION)
        remote.fail(OS_VERSION_FALLBACK)
        use_case = _sequencer(remote, forum, progress, sleep)

        outcome = await use_case.execute(_target())

        assert outcome.before_app_version is None
        assert outcome.after_os_version is None
        assert outcome.os_updated is True

    @pytest.mark.asyncio
    async def test_missing_reclaimed_marker(self, remote, forum, progress, sleep):
        remote.outputs[CLEANUP] = "nothing to clean\n"
        use_case = _sequencer(remote, forum, progress, sleep)

        outcome = await use_case.execute(_target())

        assert outcome.reclaimed_space is None

    @pytest.mark.asyncio
    async def test_streams_os_update_output(self, remote, forum, progress, sleep):
        remote.outputs[OS_UPDATE] = "Reading package lists...\nBuilding tree...\nDone\nUpgraded 4\n"
        use_case = _sequencer(remote, forum, progress, sleep)

        await use_case.execute(_target())

        os_lines = [entry for entry in progress.lines if entry[1] == "OS update in progress"]
        assert [line.text for _, _, line, _ in os_lines] == [
            "Reading package lists...",
            "Building tree...",
            "Done",
            "Upgraded 4",
        ]
        assert os_lines[-1][3] == ("Building tree...", "Done", "Upgraded 4")


class TestOsUpdateFailure:
    @pytest.mark.asyncio
    async def test_rollback_runs_once_and_aborts(self, remote, forum, progress, sleep):
        remote.fail(OS_UPDATE, "E: dpkg was interrupted")
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(OsUpdateFailedError, match="dpkg was interrupted") as exc:
            await use_case.execute(_target(os_update_rollback_cmd=ROLLBACK))

        assert exc.value.host == "forum.example.com"
        assert exc.value.step == "os-update"
        assert remote.count(ROLLBACK) == 1
        assert remote.commands_run() == [OS_VERSION, OS_UPDATE, ROLLBACK]

    @pytest.mark.asyncio
    async def test_never_reaches_later_steps(self, remote, progress, sleep):
        forum = FakeForum(versions=["3.2.0", "3.2.1"])
        remote.fail(OS_UPDATE)
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(OsUpdateFailedError):
            await use_case.execute(_target())

        assert remote.count(REBOOT) == 0
        assert remote.count(UPDATE) == 0
        assert remote.count(CLEANUP) == 0
        # Only the "before" version was consumed: collect-after never ran.
        assert forum.versions == ["3.2.1"]

    @pytest.mark.asyncio
    async def test_no_rollback_without_command(self, remote, forum, progress, sleep):
        remote.fail(OS_UPDATE)
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(OsUpdateFailedError):
            await use_case.execute(_target())

        assert remote.commands_run() == [OS_VERSION, OS_UPDATE]

    @pytest.mark.asyncio
    async def test_failed_rollback_does_not_mask_error(
        self, remote, forum, progress, sleep, caplog
    ):
        remote.fail(OS_UPDATE, "held packages")
        remote.fail(ROLLBACK, "rollback broke too")
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(OsUpdateFailedError, match="held packages"):
            await use_case.execute(_target(os_update_rollback_cmd=ROLLBACK))

        assert "OS update rollback failed" in caplog.text
        warning = next(r for r in caplog.records if "rollback failed" in r.getMessage())
        assert (warning.host, warning.step) == ("forum.example.com", "os-update")


class TestReboot:
    @pytest.mark.asyncio
    async def test_reboot_failure_skips_wait(self, remote, forum, progress, sleep):
        remote.fail(REBOOT, "sudo: a password is required")
        use_case = _sequencer(remote, forum, progress, sleep)

        outcome = await use_case.execute(_target())

        assert outcome.server_rebooted is False
        assert remote.count(PROBE_COMMAND) == 0
        assert sleep.calls == []
        assert remote.count(UPDATE) == 1

    @pytest.mark.asyncio
    async def test_empty_reboot_command_skips_step(self, remote, forum, progress, sleep):
        use_case = _sequencer(remote, forum, progress, sleep)

        outcome = await use_case.execute(_target(reboot_cmd=""))

        assert outcome.server_rebooted is False
        assert remote.count(PROBE_COMMAND) == 0
        assert REBOOT not in remote.commands_run()


class TestAwaitOnline:
    @pytest.mark.asyncio
    async def test_gives_up_after_exactly_twelve_probes(self, remote, forum, progress, sleep):
        remote.probe_default = False
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(HostUnreachableAfterRebootError) as exc:
            await use_case.execute(_target())

        assert exc.value.step == "await-online"
        assert remote.count(PROBE_COMMAND) == 12
        # One grace sleep, then an interval between consecutive probes.
        assert sleep.calls == [30] + [30] * 11
        assert remote.count(UPDATE) == 0

    @pytest.mark.asyncio
    async def test_succeeds_on_last_probe(self, remote, forum, progress, sleep):
        remote.probe_results = [False] * 11 + [True]
        use_case = _sequencer(remote, forum, progress, sleep)

        outcome = await use_case.execute(_target())

        assert outcome.server_rebooted is True
        assert remote.count(PROBE_COMMAND) == 12

    @pytest.mark.asyncio
    async def test_first_success_stops_probing(self, remote, forum, progress, sleep):
        remote.probe_results = [False, False, True]
        use_case = _sequencer(remote, forum, progress, sleep)

        await use_case.execute(_target())

        assert remote.count(PROBE_COMMAND) == 3
        assert sleep.calls == [30, 30, 30]

    @pytest.mark.asyncio
    async def test_probe_uses_short_connect_timeout(self, remote, forum, progress, sleep):
        use_case = _sequencer(remote, forum, progress, sleep)

        await use_case.execute(_target())

        # Only the reachability probe overrides the connect timeout.
        assert [t for t in remote.connect_timeouts if t is not None] == [10]

    @pytest.mark.asyncio
    async def test_custom_schedule(self, remote, forum, progress, sleep):
        remote.probe_default = False
        use_case = _sequencer(
            remote, forum, progress, sleep,
            grace_seconds=0, probe_interval_seconds=1, probe_attempts=3,
        )

        with pytest.raises(HostUnreachableAfterRebootError, match="after 3 probes"):
            await use_case.execute(_target())

        assert remote.count(PROBE_COMMAND) == 3
        assert sleep.calls == [0, 1, 1]

    def test_schedule_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="probe_attempts"):
            RebootWaitSchedule(probe_attempts=0)


class TestLaterFailures:
    @pytest.mark.asyncio
    async def test_app_upgrade_failure(self, remote, forum, progress, sleep):
        remote.fail(UPDATE, "bootstrap failed")
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(AppUpgradeFailedError, match="bootstrap failed") as exc:
            await use_case.execute(_target(os_update_rollback_cmd=ROLLBACK))

        assert exc.value.step == "app-upgrade"
        assert remote.count(ROLLBACK) == 0
        assert remote.count(CLEANUP) == 0

    @pytest.mark.asyncio
    async def test_cleanup_failure(self, remote, forum, progress, sleep):
        remote.fail(CLEANUP, "docker not running")
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(CleanupFailedError) as exc:
            await use_case.execute(_target())

        assert exc.value.step == "cleanup"


class TestTargetValidation:
    @pytest.mark.asyncio
    async def test_invalid_ssh_address_rejected_before_any_command(
        self, remote, forum, progress, sleep
    ):
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(InvalidTargetError):
            await use_case.execute(_target(ssh_host="-oProxyCommand=sh"))

        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_invalid_ssh_address_logs_aborted(
        self, remote, forum, progress, sleep, caplog
    ):
        caplog.set_level(logging.DEBUG, logger="forumfleet")
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(InvalidTargetError):
            await use_case.execute(_target(ssh_host="bad host"))

        entered = [r for r in caplog.records if "entering" in r.getMessage()]
        assert [r.step for r in entered] == ["aborted"]
        assert entered[0].host == "forum.example.com"

    @pytest.mark.asyncio
    async def test_failure_logs_aborted_after_failing_step(
        self, remote, forum, progress, sleep, caplog
    ):
        caplog.set_level(logging.DEBUG, logger="forumfleet")
        remote.fail(UPDATE, "rebuild failed")
        use_case = _sequencer(remote, forum, progress, sleep)

        with pytest.raises(AppUpgradeFailedError):
            await use_case.execute(_target(reboot_cmd=""))

        steps = [r.step for r in caplog.records if "entering" in r.getMessage()]
        assert steps[-2:] == ["app-upgrade", "aborted"]
