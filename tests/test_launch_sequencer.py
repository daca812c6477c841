"""Tests for staggered multi-account launching."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from pwaccounts.errors import ExecutableNotFoundError, SpawnError
from pwaccounts.supervisor.launch_sequencer import (
    SETTLE_DELAY_SECONDS,
    LaunchSequencer,
    clamp_delay,
)
from pwaccounts.supervisor.models import Account, LaunchRequest
from pwaccounts.supervisor.process_supervisor import ProcessSupervisor
from pwaccounts.supervisor.temp_scripts import TempScriptStore


class _VirtualClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class _ClockedSpawner:
    def __init__(self, clock: _VirtualClock, fail_logins: set[str] | None = None) -> None:
        self.clock = clock
        self.fail_logins = fail_logins or set()
        self.launches: list[tuple[str, float]] = []

    def __call__(self, script_path: Path, cwd: Path) -> int:
        text = script_path.read_text(encoding="utf-8-sig")
        login = text.split("user:", 1)[1].split()[0]
        if login in self.fail_logins:
            raise SpawnError(f"spawn refused for {login}")
        self.launches.append((login, self.clock.now))
        return 1000 + len(self.launches)


class _RecordingSink:
    def __init__(self) -> None:
        self.statuses: list[tuple[str, bool]] = []
        self.errors: list[tuple[str, str]] = []

    def notify_status(self, account_id: str, running: bool) -> None:
        self.statuses.append((account_id, running))

    def notify_error(self, message, cause=None, *, account_id="", path="") -> None:
        self.errors.append((message, account_id))


class ClampDelayTests(unittest.TestCase):
    def test_single_account_has_no_delay(self) -> None:
        self.assertEqual(clamp_delay(30, 1), 0)
        self.assertEqual(clamp_delay(30, 0), 0)

    def test_delay_is_clamped_into_safe_range(self) -> None:
        self.assertEqual(clamp_delay(1, 3), 10)
        self.assertEqual(clamp_delay(600, 3), 60)
        self.assertEqual(clamp_delay(15, 2), 15)
        self.assertEqual(clamp_delay(None, 2), 15)


class LaunchSequencerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / "elementclient.exe").write_bytes(b"MZ")
        self.clock = _VirtualClock()
        self.sink = _RecordingSink()
        self.accounts = {
            account.id: account
            for account in (
                Account(login="a", password="1"),
                Account(login="b", password="2"),
                Account(login="c", password="3"),
            )
        }
        self.ids = list(self.accounts)
        self.scripts = TempScriptStore(self.root / "tmp", grace_seconds=0)

    async def asyncTearDown(self) -> None:
        await self.scripts.aclose()
        self._tmp.cleanup()

    async def _lookup(self, account_id: str):
        return self.accounts.get(account_id)

    def _sequencer(self, spawner) -> LaunchSequencer:
        supervisor = ProcessSupervisor(
            event_sink=self.sink,
            spawn_fn=spawner,
            kill_fn=lambda pid: None,
            probe_fn=lambda pid: True,
            discover_clients=False,
            script_store=self.scripts,
        )
        return LaunchSequencer(
            supervisor,
            self._lookup,
            default_root_dir=str(self.root),
            sleep_fn=self.clock.sleep,
        )

    async def test_batch_launches_are_spaced_by_delay(self) -> None:
        spawner = _ClockedSpawner(self.clock)
        outcomes = await self._sequencer(spawner).run(
            LaunchRequest(account_ids=self.ids, delay_seconds=15)
        )

        self.assertTrue(all(outcome.success for outcome in outcomes))
        times = [at for _, at in spawner.launches]
        self.assertEqual([login for login, _ in spawner.launches], ["a", "b", "c"])
        self.assertEqual(times[0], 0)
        self.assertGreaterEqual(times[1] - times[0], 15)
        self.assertGreaterEqual(times[2] - times[1], 15)
        self.assertEqual(self.clock.sleeps, [SETTLE_DELAY_SECONDS, 15, SETTLE_DELAY_SECONDS, 15])

    async def test_single_account_launches_immediately(self) -> None:
        spawner = _ClockedSpawner(self.clock)
        outcomes = await self._sequencer(spawner).run(
            LaunchRequest(account_ids=self.ids[:1], delay_seconds=45)
        )
        self.assertEqual(len(outcomes), 1)
        self.assertEqual(outcomes[0].pid, 1001)
        self.assertEqual(self.clock.sleeps, [])

    async def test_failures_are_isolated_per_account(self) -> None:
        spawner = _ClockedSpawner(self.clock, fail_logins={"b"})
        request = LaunchRequest(account_ids=[self.ids[0], "missing", self.ids[1], self.ids[2]])

        outcomes = await self._sequencer(spawner).run(request)

        self.assertEqual([outcome.success for outcome in outcomes], [True, False, False, True])
        self.assertEqual(outcomes[1].error["error_code"], "CONFIG_UNKNOWN_ACCOUNT")
        self.assertEqual(outcomes[2].error["error_code"], "PROC_SPAWN_FAILED")
        self.assertEqual([account_id for _, account_id in self.sink.errors], ["missing", self.ids[1]])
        self.assertEqual([login for login, _ in spawner.launches], ["a", "c"])

    async def test_missing_executable_aborts_batch(self) -> None:
        (self.root / "elementclient.exe").unlink()
        spawner = _ClockedSpawner(self.clock)
        with self.assertRaises(ExecutableNotFoundError):
            await self._sequencer(spawner).run(LaunchRequest(account_ids=self.ids))
        self.assertEqual(spawner.launches, [])


if __name__ == "__main__":
    unittest.main()
