"""
inbound_kernel.domain.rbac -- Role x action x receipt-state authorization.

Responsibility:
    Decide whether a caller role may invoke an inbound action.  Rule order:
    (1) SYSTEM_ADMIN may do everything, always; (2) anyone else is denied
    everything on a CLOSED receipt; (3) otherwise the static role table
    decides.

Invariants:
    - Pure function, no side effects, never raises.  Callers check the
      boolean and present "not permitted" themselves.
    - The kernel does not authenticate; the role is an opaque token that
      is only normalized and mapped onto an inbound role.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from inbound_kernel.domain.values import ReceiptState
from inbound_kernel.logging_config import get_logger

logger = get_logger("domain.rbac")


class InboundRole(str, Enum):
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    INBOUND_OPERATOR = "INBOUND_OPERATOR"
    QUALITY = "QUALITY"
    PROCUREMENT = "PROCUREMENT"
    FINANCE = "FINANCE"
    VIEWER = "VIEWER"


class InboundAction(str, Enum):
    CREATE_RECEIPT = "CREATE_RECEIPT"
    EDIT_RECEIPT = "EDIT_RECEIPT"
    ASSIGN_SERIALS = "ASSIGN_SERIALS"
    PRINT_LABELS = "PRINT_LABELS"
    QC_DECIDE = "QC_DECIDE"
    PUTAWAY = "PUTAWAY"
    CLOSE_RECEIPT = "CLOSE_RECEIPT"


# Global (plant-wide) role token -> inbound role.  Inbound role names also
# map to themselves; see resolve_role.
DEFAULT_ROLE_ALIASES: Mapping[str, InboundRole] = MappingProxyType({
    "SYSTEM_ADMIN": InboundRole.SYSTEM_ADMIN,
    "STORES": InboundRole.INBOUND_OPERATOR,
    "QA_ENGINEER": InboundRole.QUALITY,
    "PROCUREMENT": InboundRole.PROCUREMENT,
    "MANAGEMENT": InboundRole.FINANCE,
})

ROLE_ACTIONS: Mapping[InboundRole, frozenset[InboundAction]] = MappingProxyType({
    InboundRole.INBOUND_OPERATOR: frozenset({
        InboundAction.CREATE_RECEIPT,
        InboundAction.EDIT_RECEIPT,
        InboundAction.ASSIGN_SERIALS,
        InboundAction.PRINT_LABELS,
        InboundAction.PUTAWAY,
        InboundAction.CLOSE_RECEIPT,
    }),
    InboundRole.QUALITY: frozenset({InboundAction.QC_DECIDE}),
})


def normalize_role(role: str) -> str:
    return "_".join(str(role).upper().split())


def resolve_role(
    role: str,
    aliases: Mapping[str, InboundRole] = DEFAULT_ROLE_ALIASES,
) -> InboundRole:
    """Map a caller role token onto an inbound role (VIEWER when unknown)."""
    token = normalize_role(role)
    mapped = aliases.get(token)
    if mapped is not None:
        return mapped
    try:
        return InboundRole(token)
    except ValueError:
        return InboundRole.VIEWER


def is_admin(role: str, aliases: Mapping[str, InboundRole] = DEFAULT_ROLE_ALIASES) -> bool:
    return resolve_role(role, aliases) is InboundRole.SYSTEM_ADMIN


def authorize(
    role: str,
    action: InboundAction,
    receipt_state: ReceiptState | None = None,
    *,
    aliases: Mapping[str, InboundRole] = DEFAULT_ROLE_ALIASES,
) -> bool:
    """Return True iff ``role`` may perform ``action`` on a receipt in ``receipt_state``."""
    inbound_role = resolve_role(role, aliases)

    if inbound_role is InboundRole.SYSTEM_ADMIN:
        return True

    if receipt_state is ReceiptState.CLOSED:
        logger.debug(
            "rbac_denied_closed_receipt",
            extra={"role": role, "inbound_role": inbound_role, "action": action},
        )
        return False

    allowed = action in ROLE_ACTIONS.get(inbound_role, frozenset())
    if not allowed:
        logger.debug(
            "rbac_denied",
            extra={"role": role, "inbound_role": inbound_role, "action": action},
        )
    return allowed
