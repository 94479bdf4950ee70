"""
Shared firebase_admin app initialization for Firestore and Auth.
"""

from __future__ import annotations

import firebase_admin
from firebase_admin import credentials


def ensure_firebase_app(
    project_id: str | None = None, credentials_path: str | None = None
) -> firebase_admin.App:
    """Initialize the default firebase app once per process."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    cred = (
        credentials.Certificate(credentials_path)
        if credentials_path
        else credentials.ApplicationDefault()
    )
    options = {"projectId": project_id} if project_id else None
    return firebase_admin.initialize_app(cred, options)
