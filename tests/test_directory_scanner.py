"""Tests for bounded launcher script discovery."""

import tempfile
import unittest
from pathlib import Path

from pwaccounts.batch.scanner import DirectoryScanner
from pwaccounts.supervisor.models import ServerTag


def _write_script(path: Path, login: str, password: str = "pw", server: str = "Main") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        f'@echo off\r\nstart "" "elementclient.exe" startbypatcher game:cpw user:{login} pwd:{password} role: server:{server}\r\n',
        encoding="utf-8",
    )
    return path


class _ExplodingScanner(DirectoryScanner):
    def parse_file(self, path: Path):
        if path.name == "bad.bat":
            raise RuntimeError("unreadable script")
        return super().parse_file(path)


class DirectoryScannerTests(unittest.TestCase):
    def test_collects_complete_candidates_recursively(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _write_script(root / "a.bat", "alice")
            _write_script(root / "sub" / "B.BAT", "bob", server="X")
            (root / "notes.txt").write_text("user:nobody pwd:x", encoding="utf-8")
            (root / "incomplete.bat").write_text("REM Account: carol\r\n", encoding="utf-8")

            candidates = DirectoryScanner().scan(root)

            by_login = {candidate.login: candidate for candidate in candidates}
            self.assertEqual(set(by_login), {"alice", "bob"})
            self.assertEqual(by_login["bob"].server, ServerTag.X)
            self.assertEqual(by_login["alice"].source_path, str(root / "a.bat"))

    def test_depth_ceiling_stops_descent(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            deepest_read = root / "d1" / "d2" / "d3" / "d4"
            _write_script(deepest_read / "ok.bat", "shallow")
            _write_script(deepest_read / "d5" / "deep.bat", "deep")

            logins = [candidate.login for candidate in DirectoryScanner().scan(root)]

            self.assertEqual(logins, ["shallow"])

    def test_candidate_ceiling_stops_collection(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            for index in range(5):
                _write_script(root / f"acc{index}.bat", f"acc{index}")

            candidates = DirectoryScanner(max_candidates=3).scan(root)

            self.assertEqual([c.login for c in candidates], ["acc0", "acc1", "acc2"])

    def test_missing_root_yields_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertEqual(DirectoryScanner().scan(Path(tmpdir) / "missing"), [])

    def test_failing_file_does_not_abort_scan(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _write_script(root / "bad.bat", "broken")
            _write_script(root / "good.bat", "fine")

            candidates = _ExplodingScanner().scan(root)

            self.assertEqual([c.login for c in candidates], ["fine"])

    def test_legacy_encoded_character_name_is_recovered(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "legacy.bat"
            path.write_bytes(
                "REM Character: лучник\r\nREM Owner: Иван\r\nuser:dan pwd:secret server:X\r\n".encode("cp1251")
            )

            (candidate,) = DirectoryScanner().scan(tmpdir)

            self.assertEqual(candidate.character_name, "лучник")
            self.assertEqual(candidate.owner, "Иван")
            self.assertEqual(candidate.server, ServerTag.X)

    def test_garbled_comment_is_repaired(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "garbled.bat"
            path.write_text(
                "REM Character: ╨╗╤â╤ç╨╜╨╕╨║\r\nuser:eve pwd:pw\r\n", encoding="utf-8"
            )

            (candidate,) = DirectoryScanner().scan(tmpdir)

            self.assertEqual(candidate.character_name, "лучник")


class DirectoryScannerAsyncTests(unittest.IsolatedAsyncioTestCase):
    async def test_scan_async_runs_off_loop(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            _write_script(Path(tmpdir) / "x.bat", "async_user")
            candidates = await DirectoryScanner().scan_async(tmpdir)
            self.assertEqual([c.login for c in candidates], ["async_user"])


if __name__ == "__main__":
    unittest.main()
