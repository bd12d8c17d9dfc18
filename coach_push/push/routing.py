"""Deep-link routing for push notifications.

Every push carries a ``data.url`` the service worker opens when the
notification is clicked. The target depends on who receives it: a coach
tapping a "task completed" push lands on the client it concerns, while the
same event for an admin opens the admin task board.

Routing is a lookup in :data:`ROUTE_TABLE`, keyed by
``(role, scope_key, effective_type)``:

* ``scope_key`` is the first identifier from :data:`SCOPE_PRECEDENCE` that
  the notification data carries (``clientId``, ``groupId``, ``coachId``) or
  ``None``. An identifier always wins over a bare type route.
* ``effective_type`` is ``data.notificationType`` when present, otherwise
  ``notification.type``. Generic ``system`` notifications use the nested
  value as their real kind.
* :data:`ANY_TYPE` rows are the per-scope default.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import quote

from coach_push.push.models import Notification, Role, normalize_notification

ANY_TYPE = "*"
FALLBACK_PATH = "/client/dashboard"

RouteKey = Tuple[str, Optional[str], str]

SCOPE_PRECEDENCE: Dict[str, Tuple[str, ...]] = {
    Role.CLIENT.value: ("clientId",),
    Role.COACH.value: ("clientId", "groupId"),
    Role.ADMIN.value: ("clientId", "coachId", "groupId"),
}

ROUTE_TABLE: Dict[RouteKey, str] = {
    # Clients are not normally addressed by a client id
    ("client", "clientId", ANY_TYPE): "/client/dashboard",
    ("client", None, "new_message"): "/client/sessions",
    ("client", None, "resource_shared"): "/client/resources",
    ("client", None, "session_reminder"): "/client/sessions",
    ("client", None, "goal_achieved"): "/client/dashboard",
    ("client", None, "task_created"): "/client/tasks",
    ("client", None, "task_completed"): "/client/tasks",
    ("client", None, "note_created"): "/client/dashboard",
    ("client", None, ANY_TYPE): "/client/dashboard",
    # Coach
    ("coach", "clientId", "client_signup"): "/coach/clients/{clientId}",
    ("coach", "clientId", "new_message"): "/coach/clients/{clientId}",
    ("coach", "clientId", "goal_achieved"): "/coach/clients/{clientId}",
    ("coach", "clientId", "task_completed"): "/coach/tasks",
    ("coach", "clientId", "daily_checkin"): "/coach/clients/{clientId}?tab=overview",
    ("coach", "clientId", ANY_TYPE): "/coach/clients/{clientId}",
    ("coach", "groupId", ANY_TYPE): "/coach/group/{groupId}",
    ("coach", None, "client_signup"): "/coach/clients",
    ("coach", None, "task_completed"): "/coach/tasks",
    ("coach", None, "daily_checkin"): "/coach/clients",
    ("coach", None, "new_message"): "/coach/clients",
    ("coach", None, "group_join_request"): "/coach/groups",
    ("coach", None, "goal_achieved"): "/coach/clients",
    ("coach", None, ANY_TYPE): "/coach/dashboard",
    # Admin
    ("admin", "clientId", ANY_TYPE): "/admin/clients",
    ("admin", "coachId", ANY_TYPE): "/admin/coaches/{coachId}",
    ("admin", "groupId", ANY_TYPE): "/admin/groups",
    ("admin", None, "coach_task_completed"): "/admin/tasks",
    ("admin", None, "new_message"): "/admin/chat",
    ("admin", None, ANY_TYPE): "/admin/dashboard",
}


def _role_value(role: Union[Role, str, None]) -> str:
    if isinstance(role, Role):
        return role.value
    return str(role or "")


def _has_value(value: Any) -> bool:
    return value is not None and value != ""


def effective_type(notification: Notification, data: Mapping[str, Any]) -> str:
    nested = data.get("notificationType")
    if _has_value(nested):
        return str(nested)
    return str(notification.type or "")


def select_scope(scope_keys: Tuple[str, ...], data: Mapping[str, Any]) -> Optional[str]:
    for scope_key in scope_keys:
        if _has_value(data.get(scope_key)):
            return scope_key
    return None


class RouteResolver:
    """Resolve the in-app path a notification should open."""

    def __init__(
        self,
        table: Optional[Mapping[RouteKey, str]] = None,
        scope_precedence: Optional[Mapping[str, Tuple[str, ...]]] = None,
        fallback_path: str = FALLBACK_PATH,
    ) -> None:
        self.table = dict(table if table is not None else ROUTE_TABLE)
        self.scope_precedence = dict(
            scope_precedence if scope_precedence is not None else SCOPE_PRECEDENCE
        )
        self.fallback_path = fallback_path

    def resolve(self, notification: Notification, role: Union[Role, str, None]) -> str:
        notification = normalize_notification(notification)
        data = notification.data_values
        role_key = _role_value(role)

        if role_key not in self.scope_precedence:
            return self.fallback_path

        scope_key = select_scope(self.scope_precedence[role_key], data)

        kind = effective_type(notification, data)
        template = self.table.get((role_key, scope_key, kind))
        if template is None:
            template = self.table.get((role_key, scope_key, ANY_TYPE))
        if template is None:
            return self.fallback_path

        if scope_key is None:
            return template
        return template.format(**{scope_key: quote(str(data[scope_key]), safe="")})


default_resolver = RouteResolver()


def resolve_route(notification: Notification, role: Union[Role, str, None]) -> str:
    """Resolve with the default routing table."""

    return default_resolver.resolve(notification, role)
