"""Reusable test helpers for the ticket lifecycle and notification tests.

Patterns unified:
 - Auth header creation by minting a token directly (bypassing /auth/login).
 - Capturing published notifications instead of delivering them.
 - Patch-and-assert for ticket updates.
"""
from __future__ import annotations
from typing import Dict, List
from flask_jwt_extended import create_access_token


# ---------- Generic Auth Helpers ---------- #

def jwt_headers(email: str) -> Dict[str, str]:
    """Must be called inside an app context."""
    token = create_access_token(identity=email)
    return {'Authorization': f'Bearer {token}'}


# ---------- Outbox doubles ---------- #

class RecordingOutbox:
    """Stands in for the dispatcher; keeps every published notification."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.published = []

    def publish(self, notification) -> bool:
        self.published.append(notification)
        return self.accept

    def of_kind(self, kind: str) -> List:
        return [n for n in self.published if n.kind == kind]

    def kinds(self) -> List[str]:
        return [n.kind for n in self.published]

    def clear(self):
        self.published.clear()


class ExplodingOutbox:
    def publish(self, notification):
        raise RuntimeError('queue unavailable')


# ---------- Assertion Helpers ---------- #

def patch_ticket(client, ticket_id: int, payload: dict, headers: Dict[str, str], expected_status: int = 200):
    resp = client.patch(f'/tickets/{ticket_id}', json=payload, headers=headers)
    assert resp.status_code == expected_status, resp.get_json()
    return resp.get_json()


__all__ = ['jwt_headers', 'RecordingOutbox', 'ExplodingOutbox', 'patch_ticket']
