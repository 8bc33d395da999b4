"""Role based scope resolution for directory reads and writes.

Every listing and mutation asks this module what the caller may see and edit
instead of branching on roles locally. A caller whose role is unknown, or who
needs a camp but has none, resolves to the empty scope.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Optional
from uuid import UUID

from shepherd.directory.models import AccountRole, Event, Member
from shepherd.infra.auth import Caller


class Visibility(str, Enum):
	ALL = "all"
	CAMP = "camp"
	NONE = "none"


class EditReach(str, Enum):
	ALL = "all"
	CAMP = "camp"
	ASSIGNED = "assigned"
	NONE = "none"


@dataclass(frozen=True)
class ScopeRule:
	view: Visibility
	edit: EditReach


ROLE_SCOPES: dict[AccountRole, ScopeRule] = {
	AccountRole.ADMIN: ScopeRule(view=Visibility.ALL, edit=EditReach.ALL),
	AccountRole.LEADER: ScopeRule(view=Visibility.CAMP, edit=EditReach.CAMP),
	AccountRole.SHEPHERD: ScopeRule(view=Visibility.CAMP, edit=EditReach.ASSIGNED),
}

EMPTY_RULE = ScopeRule(view=Visibility.NONE, edit=EditReach.NONE)


@dataclass(frozen=True)
class ResolvedScope:
	"""What one caller may see and touch."""

	rule: ScopeRule
	camp_id: Optional[UUID] = None

	@property
	def is_empty(self) -> bool:
		return self.rule.view is Visibility.NONE

	@property
	def sees_everything(self) -> bool:
		return self.rule.view is Visibility.ALL

	@property
	def needs_assignments(self) -> bool:
		return self.rule.edit is EditReach.ASSIGNED

	@property
	def camp_filter(self) -> Optional[UUID]:
		"""Camp to filter on, or None for an unfiltered read. Check `is_empty` first."""
		return None if self.sees_everything else self.camp_id

	def can_view_member(self, member: Member) -> bool:
		if self.rule.view is Visibility.ALL:
			return True
		if self.rule.view is Visibility.CAMP:
			return member.camp_id is not None and member.camp_id == self.camp_id
		return False

	def can_view_event(self, event: Event) -> bool:
		if self.rule.view is Visibility.ALL:
			return True
		if self.rule.view is Visibility.CAMP:
			return event.camp_id is not None and event.camp_id == self.camp_id
		return False

	def can_edit_member(self, member: Member, assigned: AbstractSet[UUID] = frozenset()) -> bool:
		reach = self.rule.edit
		if reach is EditReach.ALL:
			return True
		if reach is EditReach.CAMP:
			return member.camp_id is not None and member.camp_id == self.camp_id
		if reach is EditReach.ASSIGNED:
			return member.id in assigned
		return False

	def edit_denial(self) -> str:
		if self.rule.edit is EditReach.ASSIGNED:
			return "member not assigned to you"
		if self.rule.edit is EditReach.CAMP:
			return "member not in your camp"
		return "not permitted"


def resolve_scope(caller: Caller) -> ResolvedScope:
	try:
		role = AccountRole(caller.role)
	except ValueError:
		return ResolvedScope(EMPTY_RULE)
	rule = ROLE_SCOPES.get(role, EMPTY_RULE)
	if rule.view is Visibility.CAMP and caller.camp_id is None:
		return ResolvedScope(EMPTY_RULE)
	return ResolvedScope(rule, camp_id=caller.camp_id)


__all__ = [
	"EMPTY_RULE",
	"EditReach",
	"ROLE_SCOPES",
	"ResolvedScope",
	"ScopeRule",
	"Visibility",
	"resolve_scope",
]
