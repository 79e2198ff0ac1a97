"""Permission-name helpers for callers that hold a resolved set of names."""

from collections.abc import Iterable

from backoffice.constants import permission_name


class PermissionSet:
    """Membership checks over a principal's permission names.

    Usage::

        perms = PermissionSet(await directory.get_permission_names(session, user_id))
        if perms.can_export("orders"):
            ...
    """

    def __init__(self, names: Iterable[str]) -> None:
        self._names = frozenset(names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    @property
    def names(self) -> list[str]:
        return sorted(self._names)

    def can(self, action: str, resource: str) -> bool:
        return permission_name(action, resource) in self._names

    def can_view(self, resource: str) -> bool:
        return self.can("view", resource)

    def can_create(self, resource: str) -> bool:
        return self.can("create", resource)

    def can_edit(self, resource: str) -> bool:
        return self.can("edit", resource)

    def can_delete(self, resource: str) -> bool:
        return self.can("delete", resource)

    def can_export(self, resource: str) -> bool:
        return self.can("export", resource)

    def has_any(self, *names: str) -> bool:
        return any(name in self._names for name in names)

    def has_all(self, *names: str) -> bool:
        return all(name in self._names for name in names)

    def missing(self, *names: str) -> list[str]:
        """Names from *names* not held, in the order given."""
        return [name for name in names if name not in self._names]
