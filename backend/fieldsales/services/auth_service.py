# Overview: Current-actor identity resolved from the users collection.

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from flask import g

from ..models import Actor, Role
from .entity_store import EntityStore


class NotAuthenticated(Exception):
    """No actor is bound to the current request or command."""
    pass


class AuthContext:
    """
    Authentication collaborator consumed by the services.

    WHY: Login is handled elsewhere; the core only needs "who is acting".
    The actor is bound to flask.g for the lifetime of the app/request context.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def load_actor(self, user_id: str | None) -> Actor | None:
        if not user_id:
            return None
        user = self.store.get("users", user_id)
        if not user or not user.get("isActive", True):
            return None
        try:
            role = Role(user.get("role"))
        except ValueError:
            return None
        return Actor(id=user["id"], name=user.get("name") or "", role=role)

    def bind(self, actor: Actor) -> None:
        g.current_actor = actor

    def current_actor(self) -> Actor:
        actor = g.get("current_actor")
        if actor is None:
            raise NotAuthenticated("No current actor")
        return actor

    @contextmanager
    def acting_as(self, actor: Actor) -> Iterator[Actor]:
        previous = g.get("current_actor")
        g.current_actor = actor
        try:
            yield actor
        finally:
            g.current_actor = previous
