"""
Capability check for instructor-only operations.

Authentication and role assignment happen upstream (an auth gateway sets
``X-Actor-Id`` and ``X-Actor-Role``).  The engine only asks one question:
may this actor manage learning content and review missions?

Usage:
    from makerlab.services.permission import current_actor, require_manage_learning

    actor = current_actor()
    require_manage_learning(actor)   # raises PermissionDenied
"""

from dataclasses import dataclass

from flask import has_request_context, request

MANAGE_LEARNING_ROLES = frozenset({"instructor", "admin"})


class PermissionDenied(Exception):
    """Raised when an actor lacks the capability for an action."""

    def __init__(self, actor_id: str, action: str):
        super().__init__(f"User {actor_id} does not have permission for '{action}'")
        self.actor_id = actor_id
        self.action = action


@dataclass(frozen=True)
class Actor:
    id: str
    role: str = "student"


def current_actor() -> Actor:
    """Resolve the acting user from request headers ('system' outside a request)."""
    if not has_request_context():
        return Actor(id="system", role="system")
    actor_id = (request.headers.get("X-Actor-Id") or "anonymous").strip()
    role = (request.headers.get("X-Actor-Role") or "student").strip().lower()
    return Actor(id=actor_id, role=role)


def can_manage_learning(actor: Actor) -> bool:
    return actor is not None and actor.role in MANAGE_LEARNING_ROLES


def require_manage_learning(actor: Actor, action: str = "manage_learning") -> None:
    if not can_manage_learning(actor):
        raise PermissionDenied(actor.id if actor else "anonymous", action)
