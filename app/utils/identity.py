# app/utils/identity.py
"""
Caller identity for the HTTP surface.
The identity provider's gateway authenticates the user and forwards the
subject in X-Actor-Id (and the verified email, when known, in X-Actor-Email).
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Header, HTTPException, status


@dataclass
class Actor:
    id: str
    email: Optional[str] = None


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_email: Optional[str] = Header(default=None),
) -> Actor:
    if not x_actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Actor-Id header")
    return Actor(id=x_actor_id, email=x_actor_email or None)
