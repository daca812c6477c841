"""Tests for the HTTP host: accounts, launch/close, scan and locate."""

import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from pwaccounts.supervisor.account_store import AccountStore
from pwaccounts.supervisor.app import create_app
from pwaccounts.supervisor.process_supervisor import ProcessSupervisor
from pwaccounts.supervisor.runtime import LauncherRuntime
from pwaccounts.supervisor.settings_config import default_settings
from pwaccounts.supervisor.temp_scripts import TempScriptStore


async def _no_sleep(seconds: float) -> None:
    return None


class ApiRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.game = base / "game"
        (self.game / "element").mkdir(parents=True)
        (self.game / "element" / "ElementClient.exe").write_bytes(b"MZ")
        self.killed: list[int] = []
        self.spawned: list[Path] = []

        def spawn(script_path: Path, cwd: Path) -> int:
            self.spawned.append(script_path)
            return 5000 + len(self.spawned)

        runtime = LauncherRuntime(
            store=AccountStore(base / "accounts.db"),
            settings={**default_settings(), "game_path": str(self.game)},
            settings_file=base / "settings.json",
            supervisor=ProcessSupervisor(
                spawn_fn=spawn,
                kill_fn=self.killed.append,
                probe_fn=lambda pid: True,
                discover_clients=False,
                script_store=TempScriptStore(base / "scripts", grace_seconds=0),
                poll_interval_seconds=60,
            ),
            sleep_fn=_no_sleep,
        )
        self.client = TestClient(create_app(runtime))
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        self._tmp.cleanup()

    def _create(self, login: str, **extra) -> dict:
        response = self.client.post("/accounts", json={"login": login, "password": "pw", **extra})
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.json()["status"], "ok")

    def test_account_crud_and_duplicate_login(self) -> None:
        created = self._create("alice", server="x")
        self.assertEqual(created["server"], "X")
        duplicate = self.client.post("/accounts", json={"login": "alice", "password": "other"})
        self.assertEqual(duplicate.status_code, 400)

        updated = self.client.put(
            f"/accounts/{created['id']}", json={"login": "alice", "password": "new", "owner": "Dana"}
        )
        self.assertEqual(updated.json()["owner"], "Dana")
        self.assertEqual([a["login"] for a in self.client.get("/accounts").json()], ["alice"])

        self.assertEqual(self.client.delete(f"/accounts/{created['id']}").status_code, 200)
        self.assertEqual(self.client.delete(f"/accounts/{created['id']}").status_code, 404)

    def test_launch_list_and_close(self) -> None:
        first = self._create("alice")
        second = self._create("bob")

        response = self.client.post(
            "/launch", json={"account_ids": [first["id"], "missing", second["id"]]}
        )

        self.assertEqual(response.status_code, 200, response.text)
        outcomes = response.json()
        self.assertEqual([o["success"] for o in outcomes], [True, False, True])
        self.assertEqual(outcomes[1]["error"]["error_code"], "CONFIG_UNKNOWN_ACCOUNT")
        processes = self.client.get("/processes").json()
        self.assertEqual({p["login"] for p in processes}, {"alice", "bob"})

        closed = self.client.post("/close", json={"account_ids": [first["id"], "nobody"]}).json()
        self.assertEqual(closed["closed"], [first["id"]])
        self.assertEqual(self.killed, [outcomes[0]["pid"]])
        self.assertEqual([p["login"] for p in self.client.get("/processes").json()], ["bob"])

    def test_launch_with_invalid_root_is_configuration_error(self) -> None:
        account = self._create("alice")
        response = self.client.post(
            "/launch",
            json={"account_ids": [account["id"]], "root_dir": str(Path(self._tmp.name) / "nope")},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["error_code"], "CONFIG_ROOT_INVALID")
        self.assertEqual(self.spawned, [])

    def test_scan_import_and_export(self) -> None:
        scripts = Path(self._tmp.name) / "old_scripts"
        scripts.mkdir()
        (scripts / "carol.bat").write_text("user:carol pwd:secret server:X\r\n", encoding="utf-8")

        candidates = self.client.post("/scan", json={"root_dir": str(scripts)}).json()
        self.assertEqual([c["login"] for c in candidates], ["carol"])

        imported = self.client.post("/accounts/import", json={"candidates": candidates}).json()
        self.assertEqual([a["login"] for a in imported["saved"]], ["carol"])
        again = self.client.post("/accounts/import", json={"candidates": candidates}).json()
        self.assertEqual(again["skipped"], ["carol"])

        exported = self.client.get("/accounts/export", params={"format": "csv"})
        self.assertEqual(exported.status_code, 200)
        self.assertIn('"carol","secret","X"', exported.text)
        self.assertEqual(self.client.get("/accounts/export", params={"format": "xml"}).status_code, 400)

    def test_locate_and_permanent_script(self) -> None:
        located = self.client.post("/locate", json={}).json()
        self.assertTrue(located["found"])
        self.assertTrue(located["executable"].endswith("ElementClient.exe"))
        missing = self.client.post("/locate", json={"root_dir": self._tmp.name}).json()
        self.assertFalse(missing["found"])

        account = self._create("dave")
        response = self.client.post(f"/accounts/{account['id']}/script", json={})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertTrue(Path(response.json()["path"]).name == "pw_dave.bat")
        self.assertEqual(self.client.post("/accounts/none/script", json={}).status_code, 404)

    def test_settings_update_is_validated(self) -> None:
        response = self.client.put("/settings", json={"launch_delay_seconds": 20})
        self.assertEqual(response.json()["launch_delay_seconds"], 20)
        self.assertEqual(self.client.put("/settings", json={"launch_delay_seconds": 0}).status_code, 400)


if __name__ == "__main__":
    unittest.main()
