"""Pytest configuration and shared fixtures."""

import json
import pytest
from pathlib import Path

from cloudman.shell import CommandResult


@pytest.fixture
def variables_file(tmp_path):
    """A variables.json with a few keys already in it."""
    path = tmp_path / "variables.json"
    path.write_text(json.dumps({"DISTRO": "22.04", "NCPATH": "/var/www/nextcloud"}), encoding="utf-8")
    return path


@pytest.fixture
def missing_file(tmp_path):
    return tmp_path / "nope" / "variables.json"


@pytest.fixture
def fake_run():
    """Replacement for shell.run that records commands and replays canned results."""

    class FakeRun:
        def __init__(self):
            self.calls = []
            self.inputs = []
            self.results = {}

        def on(self, needle, rc=0, out="", err=""):
            self.results[needle] = CommandResult(rc, out, err)

        def __call__(self, cmd, check=False, timeout=None, input_text=None):
            shown = cmd if isinstance(cmd, str) else " ".join(cmd)
            self.calls.append(shown)
            self.inputs.append(input_text)
            for needle, result in self.results.items():
                if needle in shown:
                    return result
            return CommandResult(0, "", "")

    return FakeRun()


@pytest.fixture
def sample_app_list():
    """Output of occ app:list."""
    return '''Enabled:
  - activity: 2.19.0
  - calendar: 4.6.4
  - files: 2.0.0
Disabled:
  - encryption: 2.16.0
  - user_ldap: 1.18.0
'''


@pytest.fixture
def sample_update_check():
    """Output of occ update:check with two app updates and a core update."""
    return '''Nextcloud 28.0.4 is available. Get more information on how to update at https://docs.nextcloud.com/.
Update for calendar to version 4.7.0 is available.
Update for mail to version 3.6.1 is available.
'''


@pytest.fixture
def sample_pg_dump():
    return '''--
-- PostgreSQL database dump
--

COPY public.oc_users (uid, displayname, password, uid_lower) FROM stdin;
admin\tAdmin\t3|$argon2id$v=19\tadmin
alice\tAlice\t3|$argon2id$v=19\talice
bob\tBob\t3|$argon2id$v=19\tbob
\\.

COPY public.oc_groups (gid) FROM stdin;
admin
\\.
'''
