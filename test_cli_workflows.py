from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import time
import unittest
from pathlib import Path
from typing import Dict

REPO_ROOT = Path(__file__).resolve().parent


def _random_bytes(size: int) -> bytes:
    return os.urandom(size)


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (root / "build" / "bin").mkdir(parents=True)
    (root / "build" / "logs").mkdir()
    content = b"hello world\n" * 20
    (root / "build" / "bin" / "tool").write_bytes(content)
    os.chmod(root / "build" / "bin" / "tool", 0o755)
    files["build/bin/tool"] = content

    blob = _random_bytes(300 * 1024)
    (root / "build" / "bin" / "payload.bin").write_bytes(blob)
    os.chmod(root / "build" / "bin" / "payload.bin", 0o600)
    files["build/bin/payload.bin"] = blob

    (root / "build" / "logs" / "empty.log").write_text("")
    files["build/logs/empty.log"] = b""

    # Directory metadata reference
    os.chmod(root / "build" / "logs", 0o750)
    when = int(time.time()) - 86400
    os.utime(root / "build" / "logs", (when - 60, when))
    return files


def _compare_trees(src: Path, dst: Path):
    for root_src, dirs_src, files_src in os.walk(src):
        rel = os.path.relpath(root_src, src)
        root_dst = os.path.join(dst, rel) if rel != "." else str(dst)
        assert os.path.isdir(root_dst), f"Missing directory: {root_dst}"
        st_src, st_dst = os.stat(root_src), os.stat(root_dst)
        if rel != ".":
            assert st_src.st_mode == st_dst.st_mode, f"Mode differs: {root_dst}"
            assert st_src.st_mtime_ns == st_dst.st_mtime_ns, f"Mtime differs: {root_dst}"
        assert sorted(dirs_src) == sorted(d for d in os.listdir(root_dst) if os.path.isdir(os.path.join(root_dst, d)))
        for fname in files_src:
            src_path = Path(root_src) / fname
            dst_path = Path(root_dst) / fname
            assert src_path.read_bytes() == dst_path.read_bytes(), f"File contents differ: {dst_path}"
            assert src_path.stat().st_mode == dst_path.stat().st_mode, f"Mode differs: {dst_path}"


class CLIIntegrationTests(unittest.TestCase):
    def _env(self):
        env = os.environ.copy()
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(REPO_ROOT) if not existing else f"{REPO_ROOT}{os.pathsep}{existing}"
        return env

    def _run(self, cmd, *, expect: int | None = 0, cwd: Path | None = None):
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=self._env(),
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"Command exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        return self._run([sys.executable, "-m", "artpack.cli"] + list(args), expect=expect, cwd=cwd)

    def run_corrupt(self, args, *, expect: int | None = 0):
        return self._run([sys.executable, str(REPO_ROOT / "scripts" / "corrupt.py")] + list(args), expect=expect)

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.workspace = Path(tmp.name)
        self.src = self.workspace / "src"
        self.src.mkdir()
        self.files = _build_fixture_tree(self.src)
        self.archive = self.workspace / "artifacts.art"

    def test_archive_list_restore_roundtrip(self):
        proc = self.run_cli(["archive", str(self.archive), "build", "--root", str(self.src)])
        self.assertIn("Successfully archived", proc.stderr)
        self.assertIn("Done: 3 files, 3 dirs", proc.stdout)

        listing = self.run_cli(["list", str(self.archive)])
        self.assertIn("build/bin/tool", listing.stdout)
        self.assertIn("build/logs/", listing.stdout)
        self.assertIn("6 entries", listing.stdout)
        self.assertIn("-rwxr-xr-x", listing.stdout)

        out = self.workspace / "out"
        out.mkdir()
        proc = self.run_cli(["restore", str(self.archive), "--outdir", str(out)])
        self.assertIn("restored 3 files", proc.stdout)
        _compare_trees(self.src, out)

    def test_patterns_resolved_against_working_directory(self):
        self.run_cli(["archive", str(self.archive), "build/**/*.log", "build/bin/tool"], cwd=self.src)
        out = self.workspace / "out"
        out.mkdir()
        self.run_cli(["restore", str(self.archive)], cwd=out)
        self.assertEqual((out / "build" / "bin" / "tool").read_bytes(), self.files["build/bin/tool"])
        self.assertTrue((out / "build" / "logs" / "empty.log").is_file())
        self.assertFalse((out / "build" / "bin" / "payload.bin").exists())

    def test_verbose_logs_every_entry(self):
        proc = self.run_cli(["-v", "archive", str(self.archive), "build", "--root", str(self.src), "--workers", "0"])
        self.assertIn("File: ", proc.stderr)
        self.assertIn("Expanding pattern: build", proc.stderr)

    def test_memstats_logs_memory(self):
        proc = self.run_cli(["archive", str(self.archive), "build", "--root", str(self.src), "--memstats"])
        self.assertIn("RSS = ", proc.stderr)
        self.assertIn("NumGC = ", proc.stderr)

    def test_empty_match_warns(self):
        proc = self.run_cli(["archive", str(self.archive), "nothing/*", "--root", str(self.src)])
        self.assertIn("no paths matched", proc.stderr)
        listing = self.run_cli(["list", str(self.archive)])
        self.assertIn("0 entries", listing.stdout)

    def test_invalid_pattern_exits_nonzero(self):
        proc = self.run_cli(["archive", str(self.archive), "build/[oops", "--root", str(self.src)], expect=2)
        self.assertIn("invalid pattern", proc.stderr)
        self.assertFalse(self.archive.exists())

    def test_parent_relative_restore_needs_flag(self):
        self.run_cli(["archive", str(self.archive), "../build/bin/tool"], cwd=self.src / "build")
        out = self.workspace / "out" / "inner"
        out.mkdir(parents=True)
        proc = self.run_cli(["restore", str(self.archive), "--outdir", str(out)], expect=2)
        self.assertIn("outside the output directory", proc.stderr)
        self.run_cli(["restore", str(self.archive), "--outdir", str(out), "--allow-unsafe-paths"])
        restored = self.workspace / "out" / "build" / "bin" / "tool"
        self.assertEqual(restored.read_bytes(), self.files["build/bin/tool"])

    def test_missing_archive_exits_nonzero(self):
        proc = self.run_cli(["restore", str(self.workspace / "missing.art")], expect=2)
        self.assertIn("Error:", proc.stderr)

    def test_truncated_archive_detected(self):
        self.run_cli(["archive", str(self.archive), "build", "--root", str(self.src)])
        self.run_corrupt(["truncate", str(self.archive)])
        out = self.workspace / "out"
        out.mkdir()
        proc = self.run_cli(["restore", str(self.archive), "--outdir", str(out)], expect=2)
        self.assertIn("corrupt", proc.stderr)

    def test_compressed_byte_flip_detected(self):
        self.run_cli(["archive", str(self.archive), "build", "--root", str(self.src)])
        size = self.archive.stat().st_size
        self.run_corrupt(["by-offset", str(self.archive), "--offset", str(size // 2)])
        proc = self.run_cli(["list", str(self.archive)], expect=2)
        self.assertIn("corrupt", proc.stderr)

    def test_container_byte_flip_detected(self):
        self.run_cli(["archive", str(self.archive), "build", "--root", str(self.src)])
        # First record header starts right after the 16-byte stream header.
        self.run_corrupt(["container", str(self.archive), "--offset", "20"])
        proc = self.run_cli(["list", str(self.archive)], expect=2)
        self.assertIn("corrupt", proc.stderr)

    def test_corrupt_script_rejects_bad_offset(self):
        self.run_cli(["archive", str(self.archive), "build", "--root", str(self.src)])
        proc = self.run_corrupt(["by-offset", str(self.archive), "--offset", "999999999"], expect=2)
        self.assertIn("beyond end", proc.stderr)


if __name__ == "__main__":
    unittest.main()
