from __future__ import annotations

from typing import List

from google.cloud import firestore

from provisioner.core.errors import CommandFailed


def get_firestore_client(project_id: str) -> firestore.Client:
    # Uses Application Default Credentials, same as firebase_admin.
    return firestore.Client(project=project_id)


def verify_firestore(project_id: str, client: firestore.Client | None = None) -> List[str]:
    """
    Confirms the (default) database answers by listing root collections.
    A freshly created database legitimately has none.
    """
    db = client or get_firestore_client(project_id)
    try:
        return sorted(c.id for c in db.collections())
    except Exception as e:
        raise CommandFailed("Verify Firestore", f"Firestore in project '{project_id}' is not reachable", output=str(e)) from e
