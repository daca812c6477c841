"""Tests for deferred temp-script deletion and event fan-out."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pwaccounts.errors import SpawnError
from pwaccounts.supervisor.events import BroadcastEventSink
from pwaccounts.supervisor.temp_scripts import TempScriptStore


class TempScriptStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_handoff_deletes_after_grace(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = TempScriptStore(Path(tmpdir), grace_seconds=0.05)
            async with store.handoff("alice", "@echo off") as path:
                self.assertTrue(path.exists())
                self.assertTrue(path.read_bytes().startswith(b"\xef\xbb\xbf"))
            self.assertTrue(path.exists())
            self.assertEqual(store.pending_paths, [path])
            await asyncio.sleep(0.2)
            self.assertFalse(path.exists())
            self.assertEqual(store.pending_paths, [])

    async def test_handoff_schedules_deletion_when_block_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = TempScriptStore(Path(tmpdir), grace_seconds=0)
            with self.assertRaises(SpawnError):
                async with store.handoff("bob", "@echo off") as path:
                    raise SpawnError("boom")
            await asyncio.sleep(0.05)
            self.assertFalse(path.exists())

    async def test_release_failure_is_logged_not_raised(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = TempScriptStore(Path(tmpdir))
            path = store.acquire("carol", "@echo off")
            with mock.patch.object(Path, "unlink", side_effect=PermissionError("locked")):
                self.assertFalse(store.release(path))
            self.assertTrue(store.release(path))

    async def test_aclose_removes_pending_scripts_and_owned_dir(self) -> None:
        store = TempScriptStore(grace_seconds=60)
        async with store.handoff("dave", "@echo off") as path:
            pass
        await store.aclose()
        self.assertFalse(path.exists())
        self.assertFalse(store.base_dir.exists())


class BroadcastEventSinkTests(unittest.IsolatedAsyncioTestCase):
    async def test_subscribers_receive_status_and_error_events(self) -> None:
        sink = BroadcastEventSink()
        queue = sink.subscribe()
        sink.notify_status("acc-1", True)
        sink.notify_error("Launch failed", SpawnError("denied"), account_id="acc-1")

        status = queue.get_nowait()
        error = queue.get_nowait()
        self.assertEqual((status["account_id"], status["running"]), ("acc-1", True))
        self.assertEqual(error["failure"]["error_code"], "PROC_SPAWN_FAILED")

        sink.unsubscribe(queue)
        sink.notify_status("acc-1", False)
        self.assertTrue(queue.empty())
        self.assertEqual(sink.subscriber_count, 0)


if __name__ == "__main__":
    unittest.main()
