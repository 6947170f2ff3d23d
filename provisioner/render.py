from __future__ import annotations

import json
import re
from pathlib import Path

from provisioner.core.errors import ResponseShapeError
from provisioner.models import SdkConfig

CONFIG_BLOCK_RE = re.compile(
    r"const\s+firebaseConfig\s*=\s*window\.__FIREBASE_CONFIG__\s*\|\|\s*\{.*?\}\s*;",
    re.DOTALL,
)


def render_alias_file(project_id: str) -> str:
    return json.dumps({"projects": {"default": project_id}}, indent=2) + "\n"


def render_config_block(config: SdkConfig) -> str:
    lines = [f"  {k}: {json.dumps(v)}," for k, v in config.as_fields().items()]
    lines[-1] = lines[-1].rstrip(",")
    return "const firebaseConfig = window.__FIREBASE_CONFIG__ || {\n" + "\n".join(lines) + "\n};"


def replace_config_block(source: str, config: SdkConfig, *, label: str = "Render config file") -> str:
    """
    Swaps the existing `const firebaseConfig = window.__FIREBASE_CONFIG__ || {...};` block wholesale.
    """
    if not CONFIG_BLOCK_RE.search(source):
        raise ResponseShapeError(label, "firebaseConfig block not found (expected `const firebaseConfig = window.__FIREBASE_CONFIG__ || { ... };`)")
    block = render_config_block(config)
    return CONFIG_BLOCK_RE.sub(lambda _: block, source, count=1)


def write_alias_file(path: Path, project_id: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_alias_file(project_id), encoding="utf-8")


def render_config_file(path: Path, config: SdkConfig) -> str:
    """Returns the new file contents without touching disk."""
    label = "Render config file"
    if not path.is_file():
        raise ResponseShapeError(label, f"config source file not found: {path}")
    source = path.read_text(encoding="utf-8")
    return replace_config_block(source, config, label=label)


def write_config_file(path: Path, config: SdkConfig) -> None:
    path.write_text(render_config_file(path, config), encoding="utf-8")
