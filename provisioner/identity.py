from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from firebase_admin import credentials

from provisioner.core.config import settings
from provisioner.core.errors import CommandFailed, PreconditionError
from provisioner.runner import CommandRunner

EMAIL_SIGN_IN_MASK = "signIn.email.enabled,signIn.email.passwordRequired"


# -------------------------------------------------------
# Access tokens
# -------------------------------------------------------

def gcloud_access_token(runner: CommandRunner) -> str:
    label = "Fetch access token"
    res = runner.run("gcloud", ["auth", "print-access-token"])
    if not res.ok:
        raise CommandFailed(label, "gcloud could not mint an access token (try `gcloud auth login`)",
                            status=res.status, output=res.output)
    lines = [ln.strip() for ln in res.stdout.splitlines() if ln.strip()]
    if not lines:
        raise CommandFailed(label, "gcloud returned an empty access token", status=res.status, output=res.output)
    return lines[-1]


def adc_access_token() -> str:
    """
    Uses Application Default Credentials through firebase_admin.
    Locally, run `gcloud auth application-default login` first.
    """
    try:
        cred = credentials.ApplicationDefault()
        return cred.get_access_token().access_token
    except Exception as e:
        raise PreconditionError("Fetch access token", f"Application Default Credentials unavailable: {e}")


def access_token(source: str, runner: CommandRunner) -> str:
    if source == "adc":
        return adc_access_token()
    if source == "gcloud":
        return gcloud_access_token(runner)
    raise PreconditionError("Fetch access token", f"unknown token source '{source}' (expected gcloud or adc)")


# -------------------------------------------------------
# Identity Toolkit REST
# -------------------------------------------------------

@dataclass(frozen=True)
class HttpResult:
    status: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def error_message(self) -> str:
        """
        Google APIs answer {"error": {"code", "message", "status"}}; fall back to the raw body.
        """
        try:
            body = json.loads(self.text or "{}")
        except ValueError:
            return self.text
        err = body.get("error") if isinstance(body, dict) else None
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        return self.text


class IdentityToolkitClient:
    """
    Minimal admin client for Firebase Auth / Identity Platform project config.
    """

    def __init__(
        self,
        project_id: str,
        token: str,
        *,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.project_id = project_id
        self.base_url = (base_url or settings.identity_toolkit_base).rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "X-Goog-User-Project": project_id,
                "Content-Type": "application/json",
            }
        )

    def _send(self, method: str, url: str, *, params: Optional[Dict[str, str]] = None, body: Any = None) -> HttpResult:
        # requests.RequestException propagates; the caller owns the step label.
        resp = self.session.request(method, url, params=params, data=json.dumps(body if body is not None else {}))
        return HttpResult(status=resp.status_code, text=resp.text or "")

    def initialize_auth(self) -> HttpResult:
        url = f"{self.base_url}/v2/projects/{self.project_id}/identityPlatform:initializeAuth"
        return self._send("POST", url, body={})

    def enable_email_password(self) -> HttpResult:
        url = f"{self.base_url}/admin/v2/projects/{self.project_id}/config"
        body = {
            "name": f"projects/{self.project_id}/config",
            "signIn": {"email": {"enabled": True, "passwordRequired": True}},
        }
        return self._send("PATCH", url, params={"updateMask": EMAIL_SIGN_IN_MASK}, body=body)
