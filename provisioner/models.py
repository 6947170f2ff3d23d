from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from provisioner.core.errors import ResponseShapeError


class ResourceState(Enum):
    PRESENT = "present"
    ABSENT = "absent"

    @classmethod
    def of(cls, exists: bool) -> "ResourceState":
        return cls.PRESENT if exists else cls.ABSENT


@dataclass(frozen=True)
class ProvisioningStep:
    """
    One unit of the pipeline. `allowed_failures` are case-insensitive regexes; a failed call whose
    output matches any of them counts as success.
    """

    label: str
    action: Callable[..., Any]
    allowed_failures: Tuple[str, ...] = field(default_factory=tuple)

    def tolerates(self, output: str) -> bool:
        text = output or ""
        return any(re.search(p, text, re.IGNORECASE) for p in self.allowed_failures)


# -------------------------
# SDK config
# -------------------------
SDK_FIELDS = ("apiKey", "authDomain", "projectId", "storageBucket", "messagingSenderId", "appId")


class SdkConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    api_key: str = Field(..., min_length=1, alias="apiKey")
    auth_domain: str = Field(..., min_length=1, alias="authDomain")
    project_id: str = Field(..., min_length=1, alias="projectId")
    storage_bucket: Optional[str] = Field(default=None, alias="storageBucket")
    messaging_sender_id: str = Field(..., min_length=1, alias="messagingSenderId")
    app_id: str = Field(..., min_length=1, alias="appId")

    @model_validator(mode="before")
    @classmethod
    def strip_blanks(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out: Dict[str, Any] = {}
        for k, v in data.items():
            if v is None:
                continue
            if isinstance(v, (int, float)) and not isinstance(v, bool):
                v = str(v)
            if isinstance(v, str):
                v = v.strip()
                if not v:
                    continue
            out[k] = v
        return out

    @model_validator(mode="after")
    def default_bucket(self) -> "SdkConfig":
        if not self.storage_bucket:
            self.storage_bucket = f"{self.project_id}.appspot.com"
        return self

    @classmethod
    def from_payload(cls, data: Dict[str, Any], *, label: str = "Fetch SDK config") -> "SdkConfig":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise ResponseShapeError(
                label,
                f"SDK config is missing mandatory field(s): {', '.join(missing) or 'unknown'}",
                output=str(data),
            ) from e

    def as_fields(self) -> Dict[str, str]:
        """camelCase field -> value, in render order."""
        return {
            "apiKey": self.api_key,
            "authDomain": self.auth_domain,
            "projectId": self.project_id,
            "storageBucket": self.storage_bucket or f"{self.project_id}.appspot.com",
            "messagingSenderId": self.messaging_sender_id,
            "appId": self.app_id,
        }


# -------------------------
# Run inputs / outputs
# -------------------------
class BootstrapOptions(BaseModel):
    project_id: str = Field(..., min_length=1)
    billing_account: str = Field(..., min_length=1)

    project_name: Optional[str] = None
    region: str = "us-central1"
    web_app_name: Optional[str] = None

    skip_create_project: bool = False
    skip_install: bool = False
    skip_deploy: bool = False

    project_dir: str = "."
    alias_file: str = ".firebaserc"
    config_file: str = "public/js/firebase-config.js"
    token_source: str = "gcloud"
    verify_firestore: bool = False

    @property
    def display_name(self) -> str:
        return self.project_name or self.project_id

    @property
    def app_display_name(self) -> str:
        return self.web_app_name or self.display_name


class BootstrapResult(BaseModel):
    project_id: str
    app_id: str
    hosting_url: str
    sdk_config: SdkConfig
