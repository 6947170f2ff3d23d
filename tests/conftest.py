"""Shared fixtures: a stateful fake of gcloud/firebase so the pipeline runs without any cloud access."""
from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

# Set env BEFORE any provisioner imports (Settings reads it at import time)
os.environ.setdefault("BOOTSTRAP_LOG_FORMAT", "text")
os.environ.setdefault("BOOTSTRAP_TOKEN_SOURCE", "gcloud")

import pytest

from provisioner.console import Console
from provisioner.identity import HttpResult
from provisioner.models import BootstrapOptions
from provisioner.runner import CommandResult

PROJECT_ID = "acme-1"
APP_ID = "1:1234567890:web:abc123"

CONFIG_SOURCE = """import { initializeApp } from "firebase/app";

// Values are filled in by the bootstrap script.
const firebaseConfig = window.__FIREBASE_CONFIG__ || {
  apiKey: "REPLACE_ME",
  authDomain: "REPLACE_ME",
  projectId: "REPLACE_ME",
  storageBucket: "REPLACE_ME",
  messagingSenderId: "REPLACE_ME",
  appId: "REPLACE_ME"
};

export const app = initializeApp(firebaseConfig);
"""


def sdk_config(**overrides: Any) -> Dict[str, Any]:
    cfg = {
        "apiKey": "AIzaFakeKey",
        "authDomain": f"{PROJECT_ID}.firebaseapp.com",
        "projectId": PROJECT_ID,
        "storageBucket": f"{PROJECT_ID}.firebasestorage.app",
        "messagingSenderId": "1234567890",
        "appId": APP_ID,
    }
    cfg.update(overrides)
    return cfg


def ok(stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(status=0, stdout=stdout, stderr=stderr)


def fail(stderr: str, status: int = 1) -> CommandResult:
    return CommandResult(status=status, stderr=stderr)


Override = Callable[["FakeCloud", List[str]], CommandResult]


class FakeCloud:
    """
    In-memory gcloud + firebase. Mutating commands change the state that later queries see,
    so reruns observe what earlier runs created.
    """

    def __init__(
        self,
        *,
        project_exists: bool = False,
        enabled: Sequence[str] = (),
        firebase_added: bool = False,
        apps: Optional[List[Dict[str, Any]]] = None,
        databases: Sequence[str] = (),
        sdk_payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.project_exists = project_exists
        self.enabled = set(enabled)
        self.firebase_added = firebase_added
        self.apps: List[Dict[str, Any]] = list(apps or [])
        self.databases = list(databases)
        self.sdk_payload = sdk_payload
        self.calls: List[Tuple[str, List[str], Optional[str]]] = []
        self.overrides: Dict[Tuple[str, ...], Override] = {}

    # -------- helpers for assertions --------
    def commands(self) -> List[str]:
        return [" ".join([p, *a]) for p, a, _ in self.calls]

    def count(self, fragment: str) -> int:
        return sum(1 for c in self.commands() if fragment in c)

    def override(self, *prefix: str, handler: Override) -> None:
        self.overrides[tuple(prefix)] = handler

    # -------- CommandRunner --------
    def run(self, program: str, args: Sequence[str], *, cwd: Optional[str] = None) -> CommandResult:
        argv = list(args)
        self.calls.append((program, argv, cwd))
        key = (program, *argv)
        for prefix, handler in self.overrides.items():
            if key[: len(prefix)] == prefix:
                return handler(self, argv)
        return self._dispatch(program, argv)

    def _dispatch(self, program: str, a: List[str]) -> CommandResult:
        if program == "gcloud":
            return self._gcloud(a)
        if program == "firebase":
            return self._firebase(a)
        if program == "npm" and a[:1] == ["install"]:
            return ok("added 120 packages")
        return fail(f"unexpected command: {program} {' '.join(a)}", status=127)

    def _gcloud(self, a: List[str]) -> CommandResult:
        if a[:2] == ["projects", "describe"]:
            if self.project_exists:
                return ok(json.dumps({"projectId": a[2], "lifecycleState": "ACTIVE"}))
            return fail(f"ERROR: (gcloud.projects.describe) NOT_FOUND: Project {a[2]} not found")
        if a[:2] == ["projects", "create"]:
            self.project_exists = True
            return ok(stderr="Create in progress... done.")
        if a[:3] == ["config", "set", "project"]:
            return ok(stderr="Updated property [core/project].")
        if a[:3] == ["billing", "projects", "link"]:
            return ok(json.dumps({"billingEnabled": True}))
        if a[:2] == ["services", "list"]:
            items = [{"config": {"name": s}, "name": f"projects/99/services/{s}", "state": "ENABLED"}
                     for s in sorted(self.enabled)]
            return ok(json.dumps(items))
        if a[:2] == ["services", "enable"]:
            self.enabled.add(a[2])
            return ok(stderr="Operation finished successfully.")
        if a[:3] == ["firestore", "databases", "list"]:
            return ok(json.dumps([{"name": n, "type": "FIRESTORE_NATIVE"} for n in self.databases]))
        if a[:3] == ["firestore", "databases", "create"]:
            self.databases.append(f"projects/{PROJECT_ID}/databases/(default)")
            return ok(stderr="Success! Selected Google Cloud Firestore Native database for " + PROJECT_ID)
        if a[:2] == ["auth", "print-access-token"]:
            return ok("ya29.fake-token\n")
        return fail(f"unexpected gcloud command: {' '.join(a)}", status=2)

    def _firebase(self, a: List[str]) -> CommandResult:
        cmd = a[0] if a else ""
        if cmd == "projects:list":
            result = [{"projectId": PROJECT_ID, "displayName": "Acme"}] if self.firebase_added else []
            return ok(json.dumps({"status": "success", "result": result}))
        if cmd == "projects:addfirebase":
            self.firebase_added = True
            return ok("Your Firebase project is ready!")
        if cmd == "apps:list":
            return ok(json.dumps({"status": "success", "result": self.apps}))
        if cmd == "apps:create":
            app = {"appId": APP_ID, "displayName": a[2], "platform": "WEB"}
            self.apps.append(app)
            return ok("Create your WEB app in project acme-1:\n" + json.dumps({"status": "success", "result": app}))
        if cmd == "apps:sdkconfig":
            payload = self.sdk_payload or {
                "status": "success",
                "result": {"fileName": "google-config.js", "sdkConfig": sdk_config(appId=a[2])},
            }
            return ok(json.dumps(payload, indent=2))
        if cmd == "deploy":
            return ok("Deploy complete!")
        return fail(f"unexpected firebase command: {' '.join(a)}", status=2)


class FakeIdentity:
    def __init__(self, init: Optional[HttpResult] = None, sign_in: Optional[HttpResult] = None) -> None:
        self.init_result = init or HttpResult(200, '{"projectConfig": {}}')
        self.sign_in_result = sign_in or HttpResult(200, '{"signIn": {"email": {"enabled": true}}}')
        self.init_calls = 0
        self.sign_in_calls = 0

    def initialize_auth(self) -> HttpResult:
        self.init_calls += 1
        return self.init_result

    def enable_email_password(self) -> HttpResult:
        self.sign_in_calls += 1
        return self.sign_in_result


# ---------- Fixtures ----------

@pytest.fixture()
def project_dir(tmp_path):
    cfg = tmp_path / "public" / "js" / "firebase-config.js"
    cfg.parent.mkdir(parents=True)
    cfg.write_text(CONFIG_SOURCE, encoding="utf-8")
    return tmp_path


@pytest.fixture()
def options(project_dir):
    return BootstrapOptions(
        project_id=PROJECT_ID,
        billing_account="012345-6789AB-CDEF01",
        project_name="Acme",
        web_app_name="Acme Web",
        project_dir=str(project_dir),
    )


@pytest.fixture()
def fake_cloud():
    return FakeCloud()


@pytest.fixture()
def identity():
    return FakeIdentity()


@pytest.fixture()
def console():
    return Console(log_format="text")
