# Overview: Single authorization capability keyed by role and resource ownership.

"""
Authorization Policies

Each operation maps to a tuple of Rules. A Rule names a role and, optionally,
an ownership predicate over the resource the operation acts on. authorize()
is called once at the top of every service operation; it passes if any rule
matches the actor's role and its predicate (if any) holds.

Resources are Booking, Shop or Worker rows; predicates resolve the owning
shop from whichever one they are given.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .errors import AuthenticationMissing, AuthorizationDenied
from .models import Booking, Shop, Worker


ADMIN = "admin"
OWNER = "owner"
WORKER = "worker"
CUSTOMER = "customer"
SYSTEM = "system"


@dataclass(frozen=True)
class Rule:
    role: str
    predicate: Callable[[Any, Any], bool] | None = None

    def allows(self, actor, resource) -> bool:
        if actor.role != self.role:
            return False
        if self.predicate is None:
            return True
        return resource is not None and bool(self.predicate(actor, resource))


def _shop_of(resource) -> Shop | None:
    if isinstance(resource, Shop):
        return resource
    if isinstance(resource, (Booking, Worker)):
        return resource.shop
    return None


def owns_booking(actor, booking) -> bool:
    return booking.customer_id == actor.id


def is_assigned_worker(actor, booking) -> bool:
    return booking.worker is not None and booking.worker.user_id == actor.id


def owns_shop(actor, resource) -> bool:
    shop = _shop_of(resource)
    return shop is not None and shop.owner_id == actor.id


def is_worker_self(actor, worker) -> bool:
    return worker.user_id == actor.id


POLICIES: dict[str, tuple[Rule, ...]] = {
    "booking.create": (Rule(CUSTOMER),),
    "booking.list": (Rule(CUSTOMER),),
    "booking.view": (
        Rule(CUSTOMER, owns_booking),
        Rule(WORKER, is_assigned_worker),
        Rule(OWNER, owns_shop),
        Rule(ADMIN),
    ),
    "booking.confirm": (Rule(CUSTOMER, owns_booking),),
    "booking.assign": (
        Rule(CUSTOMER, owns_booking),
        Rule(OWNER, owns_shop),
        Rule(ADMIN),
        Rule(SYSTEM),
    ),
    "booking.reassign": (Rule(OWNER, owns_shop), Rule(ADMIN), Rule(SYSTEM)),
    "booking.start": (Rule(WORKER, is_assigned_worker),),
    "booking.extra_charges": (Rule(WORKER, is_assigned_worker),),
    "booking.complete": (Rule(WORKER, is_assigned_worker), Rule(ADMIN)),
    "booking.cancel": (Rule(CUSTOMER, owns_booking),),
    "booking.no_show": (Rule(OWNER, owns_shop), Rule(ADMIN)),
    "shop.assignment_sweep": (Rule(OWNER, owns_shop), Rule(ADMIN), Rule(SYSTEM)),
    "worker.availability": (
        Rule(WORKER, is_worker_self),
        Rule(OWNER, owns_shop),
        Rule(ADMIN),
    ),
    "invoice.view": (
        Rule(CUSTOMER, owns_booking),
        Rule(OWNER, owns_shop),
        Rule(ADMIN),
    ),
    "cancellations.view": (Rule(CUSTOMER),),
    "analytics.view": (Rule(ADMIN), Rule(SYSTEM)),
}


def is_allowed(actor, action: str, resource=None) -> bool:
    rules = POLICIES.get(action)
    if rules is None:
        raise KeyError(f"No policy defined for action '{action}'")
    return any(rule.allows(actor, resource) for rule in rules)


def authorize(ctx, action: str, resource=None) -> None:
    """
    Raise unless ctx.actor may perform action on resource.

    Raises:
        AuthenticationMissing: no actor on the context
        AuthorizationDenied: actor's role / ownership does not match any rule
    """
    actor = ctx.actor
    if actor is None:
        raise AuthenticationMissing("Authentication required")
    if not is_allowed(actor, action, resource):
        raise AuthorizationDenied(f"Role '{actor.role}' is not permitted to perform {action}")
