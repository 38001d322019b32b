"""Tests for the subprocess helpers."""

import subprocess
import pytest
from unittest.mock import patch, MagicMock

from cloudman.shell import CommandError, occ, output, processes_running, run


def completed(rc=0, out="", err=""):
    return subprocess.CompletedProcess(args=[], returncode=rc, stdout=out, stderr=err)


class TestRun:
    @patch("cloudman.shell.subprocess.run")
    def test_list_command_runs_without_shell(self, mock_run):
        mock_run.return_value = completed(0, "hello\n")

        result = run(["echo", "hello"])

        assert result.ok
        assert result.out == "hello\n"
        assert mock_run.call_args.kwargs["shell"] is False

    @patch("cloudman.shell.subprocess.run")
    def test_string_command_goes_through_bash(self, mock_run):
        mock_run.return_value = completed(0)

        run("ls | wc -l")

        assert mock_run.call_args.kwargs["shell"] is True
        assert mock_run.call_args.kwargs["executable"] == "/bin/bash"

    @patch("cloudman.shell.subprocess.run")
    def test_check_raises_on_failure(self, mock_run):
        mock_run.return_value = completed(2, "", "no such file")

        with pytest.raises(CommandError) as info:
            run(["cat", "/nope"], check=True)

        assert info.value.returncode == 2
        assert info.value.output == "no such file"

    @patch("cloudman.shell.subprocess.run", side_effect=FileNotFoundError("docker"))
    def test_missing_binary(self, mock_run):
        result = run(["docker", "ps"])
        assert result.rc == 127

    @patch("cloudman.shell.subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="sleep", timeout=1))
    def test_timeout(self, mock_run):
        assert run(["sleep", "10"], timeout=1).rc == 124

    @patch("cloudman.shell.subprocess.run")
    def test_output_is_empty_on_failure(self, mock_run):
        mock_run.return_value = completed(1, "partial")
        assert output(["false"]) == ""

    @patch("cloudman.shell.subprocess.run")
    def test_text_falls_back_to_stderr(self, mock_run):
        mock_run.return_value = completed(1, "", "  denied \n")
        assert run(["x"]).text() == "denied"


class TestHelpers:
    def test_occ_runs_as_web_user(self):
        assert occ("status", ncpath="/srv/nc") == ["sudo", "-u", "www-data", "php", "/srv/nc/occ", "status"]

    @patch("cloudman.shell.run")
    def test_processes_running(self, mock_run):
        mock_run.side_effect = lambda cmd: MagicMock(ok=cmd[-1] == "dpkg")
        assert processes_running(["apt", "dpkg"]) == ["dpkg"]
