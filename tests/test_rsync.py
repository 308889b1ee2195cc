"""
Unit tests for syncer.rsync module
"""
import subprocess
import unittest
from pathlib import Path
from unittest.mock import patch

from syncer.changes import DELETE_PREFIX, RECV_PREFIX, SEND_PREFIX, FsEntity
from syncer.exceptions import ConfigError, ExternalToolError, ExternalToolMissingError
from syncer.rsync import (
    LocalToLocal,
    LocalToRemote,
    RemoteToLocal,
    SshPath,
    apply_diff,
    build_apply_command,
    build_extract_command,
    extract_diff,
)


def completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(args=["rsync"], returncode=returncode, stdout=stdout, stderr=stderr)


class TestDirectionArgs(unittest.TestCase):
    """Test source/destination addressing"""

    def test_local_to_local(self):
        direction = LocalToLocal(Path("/home/me/work"), Path("/backup/2024-03-01_101500"))
        self.assertEqual(direction.to_args(), ["/home/me/work/", "/backup/2024-03-01_101500"])

    def test_local_to_local_strips_destination_slash(self):
        direction = LocalToLocal("/home/me/work/", "/backup/snap/")
        self.assertEqual(direction.to_args(), ["/home/me/work/", "/backup/snap"])

    def test_local_to_remote(self):
        remote = SshPath(server="nas", username="me", path="/srv/backup/", port=2222)
        direction = LocalToRemote(Path("/home/me/work"), remote)
        self.assertEqual(direction.to_args(), ["-e", "ssh -p 2222", "/home/me/work/", "me@nas:/srv/backup"])

    def test_remote_to_local(self):
        remote = SshPath(server="nas", username="me", path="/srv/work")
        direction = RemoteToLocal(remote, Path("/backup/snap"))
        self.assertEqual(direction.to_args(), ["-e", "ssh -p 22", "me@nas:/srv/work/", "/backup/snap"])


class TestBuildCommands(unittest.TestCase):
    """Test the rsync command lines"""

    def test_extract_command(self):
        direction = LocalToLocal(Path("/work"), Path("/archive/snap"))
        command = build_extract_command("/usr/bin/rsync", direction, Path("/archive/run.diff"), Path("/tmp/excl"))
        self.assertEqual(command, [
            "/usr/bin/rsync", "-avz", "--8-bit-output", "--exclude-from", "/tmp/excl",
            "--only-write-batch=/archive/run.diff", "--delete",
            "--out-format=changed-file:%o;%n",
            "/work/", "/archive/snap",
        ])

    def test_extract_command_remote_header_precedes_paths(self):
        direction = LocalToRemote(Path("/work"), SshPath("nas", "me", "/srv/b", 2200))
        command = build_extract_command("rsync", direction, "/a/run.diff", "/tmp/excl")
        self.assertEqual(command[-4:], ["-e", "ssh -p 2200", "/work/", "me@nas:/srv/b"])

    def test_apply_command(self):
        command = build_apply_command("rsync", Path("/archive/new/"), Path("/archive/run.diff"), Path("/tmp/excl"))
        self.assertEqual(command, [
            "rsync", "-avz", "--8-bit-output", "--exclude-from", "/tmp/excl",
            "--read-batch=/archive/run.diff", "--delete",
            "--out-format=changed-file:%o;%n",
            "/archive/new",
        ])

    def test_exclude_file_is_required(self):
        with self.assertRaises(ConfigError):
            build_apply_command("rsync", "/archive/new", "/archive/run.diff", None)
        with self.assertRaises(ConfigError):
            build_extract_command("rsync", LocalToLocal("/work", "/archive/snap"), "/archive/run.diff", None)


@patch('syncer.rsync.find_executable', return_value="/usr/bin/rsync")
class TestExtractDiff(unittest.TestCase):
    """Test extract_diff against mocked rsync runs"""

    def setUp(self):
        self.direction = LocalToLocal(Path("/work"), Path("/archive/snap"))

    @patch('syncer.rsync.run_command')
    def test_changes_are_parsed(self, mock_run_command, mock_find):
        mock_run_command.return_value = completed(
            f"sending incremental file list\n{SEND_PREFIX}./\n{SEND_PREFIX}x.txt\n{DELETE_PREFIX}old.txt\n"
        )

        record = extract_diff(self.direction, "/archive/run.diff", "/tmp/excl")

        self.assertEqual(record.changed, [FsEntity.file("x.txt")])
        self.assertEqual(record.deleted, [FsEntity.file("old.txt")])
        command = mock_run_command.call_args[0][0]
        self.assertEqual(command[0], "/usr/bin/rsync")
        self.assertIn("--only-write-batch=/archive/run.diff", command)

    @patch('syncer.rsync.run_command')
    def test_pull_from_remote_reports_received_files(self, mock_run_command, mock_find):
        mock_run_command.return_value = completed(
            f"receiving incremental file list\n{RECV_PREFIX}./\n{RECV_PREFIX}docs/\n"
            f"{RECV_PREFIX}docs/x.txt\n{DELETE_PREFIX}old.txt\n"
        )
        direction = RemoteToLocal(SshPath("nas", "me", "/srv/work", 2222), Path("/archive/snap"))

        record = extract_diff(direction, "/archive/run.diff", "/tmp/excl")

        self.assertEqual(record.changed, [FsEntity.folder("docs"), FsEntity.file("docs/x.txt")])
        self.assertEqual(record.deleted, [FsEntity.file("old.txt")])
        command = mock_run_command.call_args[0][0]
        self.assertEqual(command[-4:], ["-e", "ssh -p 2222", "me@nas:/srv/work/", "/archive/snap"])

    @patch('syncer.rsync.run_command')
    def test_non_ascii_names_are_kept(self, mock_run_command, mock_find):
        mock_run_command.return_value = completed(f"{SEND_PREFIX}café.txt\n{SEND_PREFIX}caf\udce9.txt\n")

        record = extract_diff(self.direction, "/archive/run.diff", "/tmp/excl")

        self.assertEqual(record.changed, [FsEntity.file("café.txt"), FsEntity.file("caf\udce9.txt")])
        self.assertIn("--8-bit-output", mock_run_command.call_args[0][0])

    @patch('syncer.rsync.run_command')
    def test_no_changes(self, mock_run_command, mock_find):
        mock_run_command.return_value = completed("sending incremental file list\n\nsent 20 bytes\n")
        self.assertIsNone(extract_diff(self.direction, "/archive/run.diff", "/tmp/excl"))

    @patch('syncer.rsync.run_command')
    def test_failure_sentinel(self, mock_run_command, mock_find):
        mock_run_command.return_value = completed(f"{SEND_PREFIX}x.txt\nNo batched update for \"x.txt\"\n")
        with self.assertRaises(ExternalToolError) as context:
            extract_diff(self.direction, "/archive/run.diff", "/tmp/excl")
        self.assertEqual(context.exception.operation, "extract diff")

    @patch('syncer.rsync.run_command')
    def test_failure_sentinel_on_stderr(self, mock_run_command, mock_find):
        mock_run_command.return_value = completed("", stderr="no batched update for x\n")
        with self.assertRaises(ExternalToolError):
            extract_diff(self.direction, "/archive/run.diff", "/tmp/excl")

    @patch('syncer.rsync.run_command')
    def test_nonzero_exit_propagates(self, mock_run_command, mock_find):
        mock_run_command.side_effect = ExternalToolError("rsync exited with an error", returncode=23)
        with self.assertRaises(ExternalToolError) as context:
            extract_diff(self.direction, "/archive/run.diff", "/tmp/excl")
        self.assertEqual(context.exception.returncode, 23)


class TestApplyDiff(unittest.TestCase):
    """Test apply_diff against mocked rsync runs"""

    @patch('syncer.rsync.find_executable', return_value="rsync")
    @patch('syncer.rsync.run_command')
    def test_apply(self, mock_run_command, mock_find):
        mock_run_command.return_value = completed(f"{SEND_PREFIX}x.txt\n")
        apply_diff(Path("/archive/new"), Path("/archive/run.diff"), Path("/tmp/excl"))

        command = mock_run_command.call_args[0][0]
        self.assertIn("--read-batch=/archive/run.diff", command)
        self.assertEqual(command[-1], "/archive/new")

    @patch('syncer.rsync.find_executable', return_value="rsync")
    @patch('syncer.rsync.run_command')
    def test_apply_failure_sentinel(self, mock_run_command, mock_find):
        mock_run_command.return_value = completed("No batched update for x\n")
        with self.assertRaises(ExternalToolError) as context:
            apply_diff("/archive/new", "/archive/run.diff", "/tmp/excl")
        self.assertEqual(context.exception.operation, "apply diff")

    @patch('syncer.utils.shutil.which', return_value=None)
    def test_missing_rsync(self, mock_which):
        with self.assertRaises(ExternalToolMissingError) as context:
            apply_diff("/archive/new", "/archive/run.diff", "/tmp/excl")
        self.assertIsInstance(context.exception, ExternalToolError)
        self.assertIn("rsync", str(context.exception))


if __name__ == '__main__':
    unittest.main()
