"""Expense groups: a shared bill split equally between member addresses.

The indexer only records group creation. Whether a member has settled is a
contract read (``hasUserSettled``), so settlements are supplied by the caller
as ``settled`` events instead of being fetched.
"""

from __future__ import annotations

from enum import StrEnum

from .definitions import DomainDefinition, EventKindSpec, StatusRule, every_member_has, has_event


class ExpenseGroupStatus(StrEnum):
    open = "open"
    partially_settled = "partially_settled"
    settled = "settled"


GROUP_CREATED = EventKindSpec(
    name="created",
    entity_type="GroupCreated",
    entity_field="groupId",
    actor_field="creator",
    amount_fields=("totalAmount",),
    attribute_fields=("currency", "category"),
    address_list_fields=("members",),
    timestamp_field="timestamp_",
    owner_field="creator",
)

MEMBER_SETTLED = EventKindSpec(
    name="settled",
    entity_type="MemberSettled",
    entity_field="groupId",
    actor_field="member",
    multiple=True,
    supplied=True,
)


EXPENSE_GROUP = DomainDefinition(
    name="expense_group",
    status_enum=ExpenseGroupStatus,
    creation=GROUP_CREATED,
    kinds=(MEMBER_SETTLED,),
    rules=(
        StatusRule(
            ExpenseGroupStatus.settled,
            every_member_has("settled", "members"),
            "every member settled",
        ),
        StatusRule(
            ExpenseGroupStatus.partially_settled,
            has_event("settled"),
            "any member settled",
        ),
    ),
    default_status=ExpenseGroupStatus.open,
    decimals=18,
    terminal_statuses=frozenset({ExpenseGroupStatus.settled}),
)
