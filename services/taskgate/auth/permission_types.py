"""Permission vocabulary that exists as code, not database rows.

Actions, global subjects and resource kinds are stored as plain strings in the
database; these enums are the single source of valid values.
"""

from enum import StrEnum


class PermissionAction(StrEnum):
    """The four CRUD actions a grant can allow or deny."""

    READ = "read"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


class GlobalPermissionSubject(StrEnum):
    """Coarse categories targeted by global grants."""

    PROJECTS = "project"
    TEMPLATES = "template"
    FILES = "file"
    USER_GROUPS = "userGroup"
    USERS = "user"
    POSITIONS = "position"
    EVERYTHING = "*"


class ResourceKind(StrEnum):
    """Kinds of nodes in the resource hierarchy."""

    PROJECT = "project"
    PROJECT_PHASE = "project_phase"
    TASK = "task"
    SUBTASK = "subtask"
    FILE = "file"
    TEMPLATE = "template"


# Grant column / attribute name for each action
ACTION_FIELDS: dict[PermissionAction, str] = {
    PermissionAction.READ: "can_read",
    PermissionAction.CREATE: "can_create",
    PermissionAction.EDIT: "can_edit",
    PermissionAction.DELETE: "can_delete",
}

# Kinds that own a corresponding folder in the file hierarchy
CONTAINER_KINDS: frozenset[ResourceKind] = frozenset(
    {
        ResourceKind.PROJECT,
        ResourceKind.PROJECT_PHASE,
        ResourceKind.TASK,
        ResourceKind.SUBTASK,
        ResourceKind.TEMPLATE,
    }
)

_KIND_SUBJECTS: dict[ResourceKind, GlobalPermissionSubject] = {
    ResourceKind.PROJECT: GlobalPermissionSubject.PROJECTS,
    ResourceKind.PROJECT_PHASE: GlobalPermissionSubject.PROJECTS,
    ResourceKind.TASK: GlobalPermissionSubject.PROJECTS,
    ResourceKind.SUBTASK: GlobalPermissionSubject.PROJECTS,
    ResourceKind.TEMPLATE: GlobalPermissionSubject.TEMPLATES,
    ResourceKind.FILE: GlobalPermissionSubject.FILES,
}


def subject_for_kind(kind: str) -> GlobalPermissionSubject:
    """Map a resource kind to the global subject that governs it.

    Unknown kinds map to the wildcard subject, so only an "everything" global
    grant can short-circuit them.
    """
    try:
        return _KIND_SUBJECTS[ResourceKind(kind)]
    except ValueError:
        return GlobalPermissionSubject.EVERYTHING


def parent_action(action: PermissionAction) -> PermissionAction:
    """Action to check on an ancestor when a resource itself has no opinion.

    Creating or deleting a child is governed by editing its container.
    """
    if action in (PermissionAction.CREATE, PermissionAction.DELETE):
        return PermissionAction.EDIT
    return action


def tri_or(left: bool | None, right: bool | None) -> bool | None:
    """Three-valued OR: allow wins, otherwise any unspecified side stays unspecified."""
    if left is True or right is True:
        return True
    if left is None or right is None:
        return None
    return False
