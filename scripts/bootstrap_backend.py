"""
Bootstrap a Firebase web backend end to end.

Usage (install the package first so `provisioner` is importable):
    pip install -e .
    python scripts/bootstrap_backend.py --project-id my-app-123 --billing-account 012345-6789AB-CDEF01
    python scripts/bootstrap_backend.py --project-id my-app-123 --billing-account ... --skip-deploy

Without installing, run the module from the repo root instead:
    python -m provisioner.cli --project-id my-app-123 --billing-account 012345-6789AB-CDEF01

Requires gcloud and firebase-tools on PATH, authenticated (`gcloud auth login`, `firebase login`).
"""
from provisioner.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
