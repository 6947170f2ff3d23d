import argparse
from typing import List, Optional

from pydantic import ValidationError

from provisioner.console import Console, log_json
from provisioner.core.config import settings
from provisioner.core.errors import BootstrapError
from provisioner.models import BootstrapOptions
from provisioner import sequencer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Provision a Firebase web backend (project, billing, APIs, Auth, Firestore) and deploy it"
    )
    parser.add_argument("--project-id", default=settings.google_cloud_project,
                        help="GCP/Firebase project id (defaults from GOOGLE_CLOUD_PROJECT)")
    parser.add_argument("--billing-account", required=True, help="Billing account id, e.g. 012345-6789AB-CDEF01")
    parser.add_argument("--project-name", default=None, help="Display name used when creating the project")
    parser.add_argument("--region", default=settings.region, help="Firestore location for the (default) database")
    parser.add_argument("--web-app-name", default=settings.web_app_name,
                        help="Display name of the Firebase web app to reuse or create")

    parser.add_argument("--skip-create-project", action="store_true",
                        help="Fail instead of creating the project when it does not exist")
    parser.add_argument("--skip-install", action="store_true", help="Skip `npm install`")
    parser.add_argument("--skip-deploy", action="store_true", help="Skip `firebase deploy`")

    parser.add_argument("--project-dir", default=".", help="Web project root (where firebase.json lives)")
    parser.add_argument("--config-file", default=settings.config_file,
                        help="JS file holding the firebaseConfig block, relative to --project-dir")
    parser.add_argument("--token-source", default=settings.token_source, choices=["gcloud", "adc"],
                        help="Where the Identity Toolkit access token comes from")
    parser.add_argument("--verify-firestore", action="store_true",
                        help="After provisioning, confirm Firestore answers through the client library")
    parser.add_argument("--log-format", default=settings.log_format, choices=["text", "json"])
    return parser


def options_from_args(args: argparse.Namespace) -> BootstrapOptions:
    return BootstrapOptions(
        project_id=args.project_id or "",
        billing_account=args.billing_account,
        project_name=args.project_name,
        region=args.region,
        web_app_name=args.web_app_name,
        skip_create_project=args.skip_create_project,
        skip_install=args.skip_install,
        skip_deploy=args.skip_deploy,
        project_dir=args.project_dir,
        alias_file=settings.alias_file,
        config_file=args.config_file,
        token_source=args.token_source,
        verify_firestore=args.verify_firestore,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.project_id:
        parser.error("--project-id is required (or set GOOGLE_CLOUD_PROJECT)")

    try:
        options = options_from_args(args)
    except ValidationError as e:
        raise SystemExit(f"ERROR: {e}")

    console = Console(log_format=args.log_format)
    if args.log_format == "text":
        print(f"Project: {options.project_id}")
        print(f"Mode: {'provision only' if options.skip_deploy else 'provision + deploy'}")

    try:
        result = sequencer.run(options, console=console)
    except BootstrapError as e:
        suffix = f" (status={e.status})" if e.status is not None else ""
        console.error(f"ERROR: {e.label} failed: {e.message}{suffix}", output=e.output)
        return 1

    if args.log_format == "json":
        log_json({"severity": "NOTICE", "message": "done", **result.model_dump(exclude={"sdk_config"})})
        return 0

    print("\nDONE")
    print("Project ID:", result.project_id)
    print("App ID:", result.app_id)
    print("Hosting URL:", result.hosting_url)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
