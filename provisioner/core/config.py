from __future__ import annotations

import os
from dataclasses import dataclass


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip()


@dataclass(frozen=True)
class Settings:
    # Cloud
    google_cloud_project: str | None = _env("GOOGLE_CLOUD_PROJECT", None)
    region: str = _env("BOOTSTRAP_REGION", "us-central1") or "us-central1"

    # Firebase web app
    web_app_name: str | None = _env("BOOTSTRAP_WEB_APP_NAME", None)

    # Output artifacts (relative to --project-dir)
    alias_file: str = _env("BOOTSTRAP_ALIAS_FILE", ".firebaserc") or ".firebaserc"
    config_file: str = _env("BOOTSTRAP_CONFIG_FILE", "public/js/firebase-config.js") or "public/js/firebase-config.js"

    # Auth
    # "gcloud" shells out to `gcloud auth print-access-token`, "adc" uses Application Default Credentials.
    token_source: str = (_env("BOOTSTRAP_TOKEN_SOURCE", "gcloud") or "gcloud").lower()
    identity_toolkit_base: str = (
        _env("IDENTITY_TOOLKIT_BASE", "https://identitytoolkit.googleapis.com") or "https://identitytoolkit.googleapis.com"
    ).rstrip("/")

    # Output
    log_format: str = (_env("BOOTSTRAP_LOG_FORMAT", "text") or "text").lower()


settings = Settings()
