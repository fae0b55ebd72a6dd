"""
Tests for daemon/lifecycle.py - detecting, starting and waiting for a daemon.

Process and socket seams are patched; lifecycle files live in a temporary
runtime directory.
"""

import os
import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from agentbrowser.core.configs import CliConfig
from agentbrowser.daemon import lifecycle
from agentbrowser.daemon.lifecycle import (
    DaemonResult,
    build_daemon_env,
    clean_stale_sessions,
    cleanup_session_files,
    ensure_daemon,
    find_all_sessions,
    find_daemon_path,
    is_daemon_running,
    spawn_detached,
)
from agentbrowser.daemon.paths import get_pid_path, get_socket_path
from agentbrowser.errors import DaemonNotFound, DaemonSpawnError, DaemonStartTimeout

DEAD_PID = 999999


def _fake_kill(alive_pids):
    def kill(pid, sig):
        if pid not in alive_pids:
            raise ProcessLookupError(pid)
    return kill


class LifecycleTestCase(unittest.TestCase):
    """Points every lifecycle file at a private temporary directory."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp()).resolve()
        for target in (
            "agentbrowser.daemon.paths.get_runtime_dir",
            "agentbrowser.daemon.lifecycle.get_runtime_dir",
        ):
            patcher = patch(target, return_value=self.temp_dir)
            patcher.start()
            self.addCleanup(patcher.stop)

        self.daemon_script = self.temp_dir / "daemon.js"
        self.daemon_script.write_text("// daemon")
        self.config = CliConfig(session="test", daemon_path=str(self.daemon_script))

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_pid(self, session: str, pid) -> None:
        get_pid_path(session).write_text(f"{pid}\n")


class TestLiveness(LifecycleTestCase):

    def test_no_pid_file(self):
        self.assertFalse(is_daemon_running("test"))

    def test_unparsable_pid_file(self):
        self.write_pid("test", "not-a-pid")
        self.assertFalse(is_daemon_running("test"))

    def test_live_process(self):
        self.write_pid("test", os.getpid())
        self.assertTrue(is_daemon_running("test"))

    def test_dead_process(self):
        self.write_pid("test", DEAD_PID)
        with patch("agentbrowser.daemon.lifecycle.os.kill", side_effect=_fake_kill(set())):
            self.assertFalse(is_daemon_running("test"))

    def test_non_positive_pid_is_never_probed(self):
        self.write_pid("test", 0)
        with patch("agentbrowser.daemon.lifecycle.os.kill") as kill:
            self.assertFalse(is_daemon_running("test"))
        kill.assert_not_called()

    def test_out_of_range_pid_is_not_running(self):
        for value in ("2147483648", "99999999999999999999"):
            with self.subTest(value=value):
                self.write_pid("test", value)
                self.assertIsNone(lifecycle.read_pid("test"))
                self.assertFalse(is_daemon_running("test"))

    def test_non_decimal_pid_is_not_running(self):
        for value in ("1_000", "\u0661\u0662", "-5", "+5"):
            with self.subTest(value=value):
                self.write_pid("test", value)
                self.assertIsNone(lifecycle.read_pid("test"))

    def test_probe_overflow_reports_dead(self):
        with patch("agentbrowser.daemon.lifecycle.os.kill", side_effect=OverflowError):
            self.assertFalse(lifecycle.is_process_alive(123))

    def test_cleanup_ignores_missing_files(self):
        cleanup_session_files("test")
        get_socket_path("test").write_text("")
        self.write_pid("test", 1)
        cleanup_session_files("test")
        self.assertFalse(get_socket_path("test").exists())
        self.assertFalse(get_pid_path("test").exists())


class TestEnsureDaemon(LifecycleTestCase):

    def test_already_running_is_idempotent(self):
        with patch.object(lifecycle, "is_daemon_running", return_value=True), \
                patch.object(lifecycle, "is_daemon_ready", return_value=True), \
                patch.object(lifecycle, "spawn_detached") as spawn:
            first = ensure_daemon(self.config)
            second = ensure_daemon(self.config)

        self.assertEqual(first, DaemonResult(already_running=True))
        self.assertEqual(second, DaemonResult(already_running=True))
        spawn.assert_not_called()

    def test_starts_daemon_when_missing(self):
        with patch.object(lifecycle, "is_daemon_ready", side_effect=[False, False, True]) as ready, \
                patch.object(lifecycle, "spawn_detached") as spawn, \
                patch.object(lifecycle.time, "sleep") as sleep:
            result = ensure_daemon(self.config)

        self.assertEqual(result, DaemonResult(already_running=False))
        self.assertEqual(ready.call_count, 3)
        self.assertEqual(sleep.call_count, 3)
        sleep.assert_called_with(0.1)

        cmd, env = spawn.call_args[0]
        self.assertEqual(cmd, ["node", str(self.daemon_script)])
        self.assertEqual(env["AGENT_BROWSER_SESSION"], "test")
        self.assertEqual(env["AGENT_BROWSER_DAEMON"], "1")

    def test_running_but_not_ready_restarts(self):
        with patch.object(lifecycle, "is_daemon_running", return_value=True), \
                patch.object(lifecycle, "is_daemon_ready", side_effect=[False, True]), \
                patch.object(lifecycle, "spawn_detached") as spawn, \
                patch.object(lifecycle.time, "sleep"):
            result = ensure_daemon(self.config)

        self.assertFalse(result.already_running)
        spawn.assert_called_once()

    def test_start_timeout(self):
        with patch.object(lifecycle, "is_daemon_ready", return_value=False), \
                patch.object(lifecycle, "spawn_detached"), \
                patch.object(lifecycle.time, "sleep") as sleep:
            with self.assertRaises(DaemonStartTimeout) as context:
                ensure_daemon(self.config)

        self.assertEqual(sleep.call_count, 50)
        self.assertIn("5 seconds", str(context.exception))

    def test_poll_stops_at_deadline(self):
        with patch.object(lifecycle, "is_daemon_ready", return_value=False) as ready, \
                patch.object(lifecycle, "spawn_detached"), \
                patch.object(lifecycle.time, "sleep"), \
                patch.object(lifecycle.time, "monotonic", side_effect=[0.0, 4.95, 5.0]):
            with self.assertRaises(DaemonStartTimeout):
                ensure_daemon(self.config)

        ready.assert_called_once()
        self.assertAlmostEqual(ready.call_args[1]["timeout"], 0.1)

    def test_stale_files_removed_before_spawn(self):
        self.write_pid("test", DEAD_PID)
        get_socket_path("test").write_text("")

        def check_clean(cmd, env):
            self.assertFalse(get_pid_path("test").exists())
            self.assertFalse(get_socket_path("test").exists())
            return MagicMock()

        with patch("agentbrowser.daemon.lifecycle.os.kill", side_effect=_fake_kill(set())), \
                patch.object(lifecycle, "is_daemon_ready", return_value=True), \
                patch.object(lifecycle, "spawn_detached", side_effect=check_clean) as spawn, \
                patch.object(lifecycle.time, "sleep"):
            result = ensure_daemon(self.config)

        self.assertFalse(result.already_running)
        spawn.assert_called_once()

    def test_daemon_not_found(self):
        config = CliConfig(session="test", daemon_path=str(self.temp_dir / "missing.js"))
        with patch.object(lifecycle, "INSTALL_ROOT", self.temp_dir / "root"), \
                patch.object(lifecycle.sys, "argv", [str(self.temp_dir / "bin" / "agentbrowser")]), \
                patch.object(lifecycle, "spawn_detached") as spawn:
            with self.assertRaises(DaemonNotFound) as context:
                ensure_daemon(config)

        spawn.assert_not_called()
        self.assertIn(str(self.temp_dir / "missing.js"), context.exception.searched)


class TestDaemonLocation(LifecycleTestCase):

    def test_candidate_order(self):
        bin_dir = self.temp_dir / "pkg" / "bin"
        built = self.temp_dir / "pkg" / "dist" / "core" / "daemon.js"
        source = self.temp_dir / "pkg" / "src" / "core" / "daemon.ts"
        for path in (built, source):
            path.parent.mkdir(parents=True)
            path.write_text("")

        config = CliConfig(session="test")
        with patch.object(lifecycle.sys, "argv", [str(bin_dir / "agentbrowser")]):
            self.assertEqual(find_daemon_path(config), built)
            built.unlink()
            self.assertEqual(find_daemon_path(config), source)

    def test_npm_prefix(self):
        prefix = self.temp_dir / "npm"
        script = prefix / "lib" / "node_modules" / "agentbrowser-pro" / "dist" / "core" / "daemon.js"
        script.parent.mkdir(parents=True)
        script.write_text("")

        config = CliConfig(session="test", npm_prefix=str(prefix))
        with patch.object(lifecycle, "INSTALL_ROOT", self.temp_dir / "root"), \
                patch.object(lifecycle.sys, "argv", [str(self.temp_dir / "bin" / "x")]):
            self.assertEqual(find_daemon_path(config), script)


class TestSpawn(unittest.TestCase):

    def test_daemon_env(self):
        config = CliConfig(
            session="work", headed=True, executable_path="/opt/chrome", extensions=["a", "b"],
        )
        env = build_daemon_env(config, base_env={"PATH": "/bin"})
        self.assertEqual(env, {
            "PATH": "/bin",
            "AGENT_BROWSER_DAEMON": "1",
            "AGENT_BROWSER_SESSION": "work",
            "AGENT_BROWSER_HEADED": "1",
            "AGENT_BROWSER_EXECUTABLE_PATH": "/opt/chrome",
            "AGENT_BROWSER_EXTENSIONS": "a,b",
        })

    def test_daemon_env_omits_unset_options(self):
        env = build_daemon_env(CliConfig(), base_env={})
        self.assertEqual(env, {"AGENT_BROWSER_DAEMON": "1", "AGENT_BROWSER_SESSION": "default"})

    @unittest.skipIf(os.name == "nt", "POSIX session detach")
    def test_spawn_detached(self):
        with patch.object(lifecycle.subprocess, "Popen") as popen:
            spawn_detached(["node", "daemon.js"], {"A": "1"})

        args, kwargs = popen.call_args
        self.assertEqual(args[0], ["node", "daemon.js"])
        self.assertTrue(kwargs["start_new_session"])
        for stream in ("stdin", "stdout", "stderr"):
            self.assertEqual(kwargs[stream], subprocess.DEVNULL)
        self.assertEqual(kwargs["env"], {"A": "1"})

    def test_spawn_failure(self):
        with patch.object(lifecycle.subprocess, "Popen", side_effect=FileNotFoundError("node")):
            with self.assertRaises(DaemonSpawnError):
                spawn_detached(["node", "daemon.js"], {})


class TestForeground(LifecycleTestCase):

    def test_run_daemon_foreground_returns_exit_code(self):
        with patch.object(lifecycle.subprocess, "run") as run:
            run.return_value.returncode = 3
            self.assertEqual(lifecycle.run_daemon_foreground(self.config), 3)

        cmd = run.call_args[0][0]
        self.assertEqual(cmd, ["node", str(self.daemon_script)])
        self.assertEqual(run.call_args[1]["env"]["AGENT_BROWSER_DAEMON"], "1")

    def test_run_mcp_without_entry_script(self):
        with patch.object(lifecycle, "find_entry_path", return_value=None):
            with self.assertRaises(DaemonNotFound):
                lifecycle.run_mcp_foreground(self.config)

    def test_run_mcp_foreground(self):
        entry = self.temp_dir / "agentbrowser-pro"
        with patch.object(lifecycle, "find_entry_path", return_value=entry), \
                patch.object(lifecycle.subprocess, "run") as run:
            run.return_value.returncode = 0
            self.assertEqual(lifecycle.run_mcp_foreground(self.config), 0)

        self.assertEqual(run.call_args[0][0], ["node", str(entry), "mcp"])
        self.assertEqual(run.call_args[1]["env"]["AGENT_BROWSER_SESSION"], "test")


class TestSessionDiscovery(LifecycleTestCase):

    def test_session_clean_survives_out_of_range_pid(self):
        self.write_pid("broken", "2147483648")
        self.assertEqual(find_all_sessions(), [])
        self.assertEqual(clean_stale_sessions(), ["broken"])
        self.assertFalse(get_pid_path("broken").exists())

    def test_find_and_clean_sessions(self):
        self.write_pid("alive", 100)
        self.write_pid("dead", DEAD_PID)
        get_socket_path("dead").write_text("")

        with patch("agentbrowser.daemon.lifecycle.os.kill", side_effect=_fake_kill({100})):
            self.assertEqual(find_all_sessions(), ["alive"])
            self.assertEqual(clean_stale_sessions(), ["dead"])

        self.assertTrue(get_pid_path("alive").exists())
        self.assertFalse(get_pid_path("dead").exists())
        self.assertFalse(get_socket_path("dead").exists())


if __name__ == "__main__":
    unittest.main()
