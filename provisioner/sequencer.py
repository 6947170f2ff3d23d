"""
Idempotent provisioning pipeline for a Firebase web backend.

Each step checks the target state first and only mutates when the resource is absent. A failed
mutating call is downgraded to informational when its output matches the step's allow-list.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import requests

from provisioner.console import Console
from provisioner.core.errors import CommandFailed, PreconditionError, ResponseShapeError
from provisioner.identity import HttpResult, IdentityToolkitClient, access_token
from provisioner.jsonout import extract_json_list, extract_json_object, result_list, unwrap_sdk_config
from provisioner.models import BootstrapOptions, BootstrapResult, ProvisioningStep, ResourceState, SdkConfig
from provisioner.render import render_config_file, write_alias_file
from provisioner.runner import CommandResult, CommandRunner, SubprocessRunner, require_tools
from provisioner.verify import verify_firestore

REQUIRED_SERVICES = (
    "firebase.googleapis.com",
    "firestore.googleapis.com",
    "identitytoolkit.googleapis.com",
    "firebasehosting.googleapis.com",
    "cloudresourcemanager.googleapis.com",
)

DEFAULT_DATABASE_SUFFIX = "/databases/(default)"

# Allow-lists. Matching is case-insensitive regex search over the captured output.
AUTH_ALREADY_INITIALIZED = (r"already\s+(been\s+)?(enabled|initiali[sz]ed|exists)",)
ALREADY_EXISTS = (r"ALREADY_EXISTS", r"already exists")

# gcloud reports a missing project either as NOT_FOUND or as "... (or it may not exist)".
NOT_FOUND_RE = re.compile(r"NOT_FOUND|not found|may not exist|does not exist", re.IGNORECASE)


@dataclass
class BootstrapContext:
    """
    Everything a single run owns. Nothing here is shared across runs.
    """

    options: BootstrapOptions
    runner: CommandRunner
    console: Console
    identity: Optional[IdentityToolkitClient] = None
    enabled_services: Set[str] = field(default_factory=set)
    app_id: Optional[str] = None
    sdk_config: Optional[SdkConfig] = None

    @property
    def project_id(self) -> str:
        return self.options.project_id

    @property
    def project_dir(self) -> Path:
        return Path(self.options.project_dir)

    # -------------------------
    # External call helpers
    # -------------------------
    def query(self, step: ProvisioningStep, program: str, args: Sequence[str], *, what: str) -> CommandResult:
        """Read-only call; any failure is fatal."""
        res = self.runner.run(program, list(args))
        if not res.ok:
            raise CommandFailed(step.label, f"could not {what}", status=res.status, output=res.output)
        return res

    def mutate(self, step: ProvisioningStep, program: str, args: Sequence[str], *, cwd: Optional[str] = None) -> bool:
        """
        Mutating call. Returns True on success, False when the failure was tolerated by the allow-list.
        """
        res = self.runner.run(program, list(args), cwd=cwd)
        return self.settle(step, res.ok, res.status, res.output)

    def settle(
        self,
        step: ProvisioningStep,
        ok: bool,
        status: int,
        output: str,
        *,
        hint: str = "",
        match_text: Optional[str] = None,
    ) -> bool:
        if ok:
            return True
        if step.tolerates(output if match_text is None else match_text):
            self.console.info("already in place (tolerated failure)", output=output)
            return False
        message = "call failed"
        if hint:
            message += f"; {hint}"
        raise CommandFailed(step.label, message, status=status, output=output)

    def rest(self, step: ProvisioningStep, call: Callable[[], HttpResult], *, hint: str = "") -> bool:
        try:
            res = call()
        except requests.RequestException as e:
            raise CommandFailed(step.label, "request did not complete", output=str(e)) from e
        # Allow-lists match the API error message; the fatal error keeps the raw body.
        return self.settle(step, res.ok, res.status, res.text, hint=hint, match_text=res.error_message())

    def identity_client(self) -> IdentityToolkitClient:
        if self.identity is None:
            token = access_token(self.options.token_source, self.runner)
            self.identity = IdentityToolkitClient(self.project_id, token)
        return self.identity


# =========================
# Steps
# =========================
def project_state(ctx: BootstrapContext, step: ProvisioningStep) -> Tuple[ResourceState, str]:
    """
    PRESENT on success, ABSENT only when gcloud says the project is not found.
    Any other failure (auth, permissions) is fatal rather than a reason to create.
    """
    res = ctx.runner.run("gcloud", ["projects", "describe", ctx.project_id, "--format=json"])
    if res.ok:
        return ResourceState.PRESENT, res.output
    if NOT_FOUND_RE.search(res.output):
        return ResourceState.ABSENT, res.output
    raise CommandFailed(step.label, "could not check whether the project exists", status=res.status, output=res.output)


def ensure_project(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    state, describe_output = project_state(ctx, step)
    if state is ResourceState.PRESENT:
        ctx.console.ok(f"project '{ctx.project_id}' exists")
        return

    if ctx.options.skip_create_project:
        raise PreconditionError(
            step.label,
            f"project '{ctx.project_id}' does not exist and project creation is disabled (--skip-create-project)",
            output=describe_output,
        )

    ctx.mutate(step, "gcloud", ["projects", "create", ctx.project_id, f"--name={ctx.options.display_name}"])
    ctx.console.ok(f"project '{ctx.project_id}' created")


def set_active_project(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    ctx.mutate(step, "gcloud", ["config", "set", "project", ctx.project_id])
    ctx.console.ok(f"gcloud now targets '{ctx.project_id}'")


def link_billing(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    ctx.mutate(
        step,
        "gcloud",
        ["billing", "projects", "link", ctx.project_id, f"--billing-account={ctx.options.billing_account}"],
    )
    ctx.console.ok(f"billing account {ctx.options.billing_account} linked")


def fetch_enabled_services(ctx: BootstrapContext, step: ProvisioningStep) -> Set[str]:
    res = ctx.query(
        step,
        "gcloud",
        ["services", "list", "--enabled", "--project", ctx.project_id, "--format=json"],
        what="list enabled services",
    )
    names: Set[str] = set()
    for item in extract_json_list(res.stdout, label=step.label):
        if not isinstance(item, dict):
            continue
        name = (item.get("config") or {}).get("name") or str(item.get("name", "")).rsplit("/", 1)[-1]
        if name:
            names.add(name)
    return names


def enable_services(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    ctx.enabled_services = fetch_enabled_services(ctx, step)

    for service in REQUIRED_SERVICES:
        if service in ctx.enabled_services:
            ctx.console.ok(f"{service} already enabled")
            continue

        res = ctx.runner.run("gcloud", ["services", "enable", service, "--project", ctx.project_id])
        if not res.ok:
            # Enabling races with propagation; trust the enabled list over the exit code.
            ctx.enabled_services = fetch_enabled_services(ctx, step)
            if service not in ctx.enabled_services:
                raise CommandFailed(step.label, f"could not enable {service}", status=res.status, output=res.output)
            ctx.console.info(f"{service} reported an error but is enabled", output=res.output)
            continue

        ctx.enabled_services.add(service)
        ctx.console.ok(f"{service} enabled")


def register_firebase(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    res = ctx.query(step, "firebase", ["projects:list", "--json"], what="list Firebase projects")
    projects = result_list(extract_json_object(res.stdout, label=step.label), label=step.label)
    registered = any(p.get("projectId") == ctx.project_id for p in projects)

    if ResourceState.of(registered) is ResourceState.PRESENT:
        ctx.console.ok("Firebase already added to project")
        return

    if ctx.mutate(step, "firebase", ["projects:addfirebase", ctx.project_id]):
        ctx.console.ok("Firebase added to project")


def pick_web_app(apps: List[Dict[str, Any]], display_name: str) -> Optional[Dict[str, Any]]:
    for app in apps:
        if app.get("displayName") == display_name:
            return app
    return apps[0] if apps else None


def ensure_web_app(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    name = ctx.options.app_display_name
    res = ctx.query(
        step, "firebase", ["apps:list", "WEB", "--project", ctx.project_id, "--json"], what="list web apps"
    )
    app = pick_web_app(result_list(extract_json_object(res.stdout, label=step.label), label=step.label), name)

    if app is None:
        created = ctx.runner.run("firebase", ["apps:create", "WEB", name, "--project", ctx.project_id, "--json"])
        ctx.settle(step, created.ok, created.status, created.output)
        payload = extract_json_object(created.stdout, label=step.label)
        result = payload.get("result")
        app = result if isinstance(result, dict) else payload
        ctx.console.ok(f"web app '{name}' created")
    else:
        ctx.console.ok(f"using web app '{app.get('displayName') or app.get('appId')}'")

    app_id = str(app.get("appId") or "").strip()
    if not app_id:
        raise ResponseShapeError(step.label, "could not resolve the web app id", output=str(app))
    ctx.app_id = app_id
    ctx.console.info(f"appId={app_id}")


def ensure_firestore(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    res = ctx.query(
        step,
        "gcloud",
        ["firestore", "databases", "list", "--project", ctx.project_id, "--format=json"],
        what="list Firestore databases",
    )
    databases = extract_json_list(res.stdout, label=step.label)
    exists = any(
        isinstance(db, dict) and str(db.get("name", "")).endswith(DEFAULT_DATABASE_SUFFIX) for db in databases
    )

    if ResourceState.of(exists) is ResourceState.PRESENT:
        ctx.console.ok("(default) Firestore database exists")
        return

    created = ctx.mutate(
        step,
        "gcloud",
        ["firestore", "databases", "create", f"--location={ctx.options.region}", "--project", ctx.project_id],
    )
    if created:
        ctx.console.ok(f"(default) Firestore database created in {ctx.options.region}")


def initialize_auth(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    client = ctx.identity_client()
    if ctx.rest(step, client.initialize_auth, hint="is billing enabled for this project?"):
        ctx.console.ok("Firebase Auth initialized")


def enable_email_sign_in(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    client = ctx.identity_client()
    ctx.rest(step, client.enable_email_password)
    ctx.console.ok("email/password sign-in enabled")


def fetch_sdk_config(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    if not ctx.app_id:
        raise ResponseShapeError(step.label, "no web app id resolved")
    res = ctx.query(
        step,
        "firebase",
        ["apps:sdkconfig", "WEB", ctx.app_id, "--project", ctx.project_id, "--json"],
        what="fetch the web SDK config",
    )
    payload = extract_json_object(res.stdout, label=step.label)
    ctx.sdk_config = SdkConfig.from_payload(unwrap_sdk_config(payload), label=step.label)
    ctx.console.ok("SDK config fetched")


def render_artifacts(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    if ctx.sdk_config is None:
        raise ResponseShapeError(step.label, "SDK config was not fetched")

    alias_path = ctx.project_dir / ctx.options.alias_file
    config_path = ctx.project_dir / ctx.options.config_file

    # Render the config source first so a missing anchor leaves both files untouched.
    config_source = render_config_file(config_path, ctx.sdk_config)

    write_alias_file(alias_path, ctx.project_id)
    ctx.console.ok(f"wrote {alias_path}")
    config_path.write_text(config_source, encoding="utf-8")
    ctx.console.ok(f"wrote {config_path}")


def install_dependencies(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    ctx.mutate(step, "npm", ["install"], cwd=str(ctx.project_dir))
    ctx.console.ok("npm install finished")


def deploy(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    ctx.mutate(step, "firebase", ["deploy", "--project", ctx.project_id, "--non-interactive"], cwd=str(ctx.project_dir))
    ctx.console.ok("deployed")


def verify_database(ctx: BootstrapContext, step: ProvisioningStep) -> None:
    collections = verify_firestore(ctx.project_id)
    ctx.console.ok(f"Firestore reachable ({len(collections)} root collection(s))")


# =========================
# Pipeline
# =========================
def build_pipeline(options: BootstrapOptions) -> List[ProvisioningStep]:
    steps = [
        ProvisioningStep("Ensure project exists", ensure_project),
        ProvisioningStep("Set active project", set_active_project),
        ProvisioningStep("Link billing account", link_billing),
        ProvisioningStep("Enable required APIs", enable_services),
        ProvisioningStep("Register Firebase project", register_firebase, ALREADY_EXISTS),
        ProvisioningStep("Ensure web app", ensure_web_app),
        ProvisioningStep("Ensure Firestore database", ensure_firestore, ALREADY_EXISTS),
        ProvisioningStep("Initialize Firebase Auth", initialize_auth, AUTH_ALREADY_INITIALIZED),
        ProvisioningStep("Enable email/password sign-in", enable_email_sign_in),
        ProvisioningStep("Fetch SDK config", fetch_sdk_config),
        ProvisioningStep("Write config files", render_artifacts),
    ]
    if not options.skip_install:
        steps.append(ProvisioningStep("Install dependencies", install_dependencies))
    if not options.skip_deploy:
        steps.append(ProvisioningStep("Deploy", deploy))
    if options.verify_firestore:
        steps.append(ProvisioningStep("Verify Firestore", verify_database))
    return steps


def required_tools(options: BootstrapOptions) -> List[str]:
    tools = ["gcloud", "firebase"]
    if not options.skip_install:
        tools.append("npm")
    return tools


def hosting_url(project_id: str) -> str:
    return f"https://{project_id}.web.app"


def run(
    options: BootstrapOptions,
    *,
    runner: Optional[CommandRunner] = None,
    identity: Optional[IdentityToolkitClient] = None,
    console: Optional[Console] = None,
) -> BootstrapResult:
    """
    Runs every step in order and returns the resolved ids. Any BootstrapError aborts the run;
    nothing already applied is rolled back.
    """
    if runner is None:
        require_tools(required_tools(options))
        runner = SubprocessRunner()

    steps = build_pipeline(options)
    console = console or Console(total_steps=len(steps))
    console.total_steps = len(steps)

    ctx = BootstrapContext(options=options, runner=runner, console=console, identity=identity)
    for step in steps:
        console.step(step.label)
        step.action(ctx, step)

    if ctx.app_id is None or ctx.sdk_config is None:
        raise ResponseShapeError("Finish", "run ended without a resolved app id and SDK config")
    return BootstrapResult(
        project_id=ctx.project_id,
        app_id=ctx.app_id,
        hosting_url=hosting_url(ctx.project_id),
        sdk_config=ctx.sdk_config,
    )
