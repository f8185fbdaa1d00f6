"""Static catalog of TargetProcess entity types, extended at runtime with custom types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class EntityCategory(str, Enum):
    ASSIGNABLE = "assignable"
    PROJECT = "project"
    PLANNING = "planning"
    SYSTEM = "system"
    CUSTOM = "custom"


CATEGORY_LABELS = {
    EntityCategory.ASSIGNABLE: "Work Items",
    EntityCategory.PROJECT: "Project Management",
    EntityCategory.PLANNING: "Planning",
    EntityCategory.SYSTEM: "System",
    EntityCategory.CUSTOM: "Custom",
}


@dataclass(frozen=True)
class EntityTypeDescriptor:
    name: str
    category: EntityCategory
    description: str = ""
    supports_custom_fields: bool = False
    parent_types: Tuple[str, ...] = field(default_factory=tuple)
    common_includes: Tuple[str, ...] = field(default_factory=tuple)


def _d(
    name: str,
    category: EntityCategory,
    description: str,
    *,
    custom_fields: bool,
    parents: Tuple[str, ...] = (),
    includes: Tuple[str, ...] = (),
) -> EntityTypeDescriptor:
    return EntityTypeDescriptor(
        name=name,
        category=category,
        description=description,
        supports_custom_fields=custom_fields,
        parent_types=parents,
        common_includes=includes,
    )


_A = EntityCategory.ASSIGNABLE
_P = EntityCategory.PROJECT
_PL = EntityCategory.PLANNING
_S = EntityCategory.SYSTEM

STATIC_ENTITY_TYPES: Tuple[EntityTypeDescriptor, ...] = (
    # Assignable entities (work items that can be assigned to users)
    _d(
        "UserStory",
        _A,
        "User stories represent features from the user perspective",
        custom_fields=True,
        parents=("Feature", "Epic"),
        includes=("Project", "Feature", "EntityState", "Priority", "AssignedUser", "Team"),
    ),
    _d(
        "Bug",
        _A,
        "Bugs track defects and issues",
        custom_fields=True,
        parents=("UserStory", "Feature"),
        includes=("Project", "UserStory", "EntityState", "Priority", "Severity", "AssignedUser"),
    ),
    _d(
        "Task",
        _A,
        "Tasks represent work items within user stories",
        custom_fields=True,
        parents=("UserStory",),
        includes=("UserStory", "EntityState", "AssignedUser"),
    ),
    _d(
        "Feature",
        _A,
        "Features group related user stories",
        custom_fields=True,
        parents=("Epic",),
        includes=("Project", "Epic", "EntityState", "AssignedUser"),
    ),
    _d(
        "Epic",
        _A,
        "Epics represent large bodies of work",
        custom_fields=True,
        parents=("Project",),
        includes=("Project", "EntityState", "AssignedUser"),
    ),
    _d(
        "TestCase",
        _A,
        "Test cases for quality assurance",
        custom_fields=True,
        parents=("UserStory",),
        includes=("UserStory", "Project", "AssignedUser"),
    ),
    _d(
        "TestPlan",
        _A,
        "Test plans organize test cases",
        custom_fields=True,
        includes=("Project", "Release", "TestCases"),
    ),
    _d(
        "Request",
        _A,
        "Customer requests and feedback",
        custom_fields=True,
        includes=("Project", "EntityState", "AssignedUser"),
    ),
    # Project management entities
    _d(
        "Project",
        _P,
        "Projects contain all work items",
        custom_fields=True,
        includes=("Program", "Process", "EntityState"),
    ),
    _d(
        "Program",
        _P,
        "Programs group related projects",
        custom_fields=True,
        includes=("Projects",),
    ),
    _d(
        "Team",
        _P,
        "Teams work on projects",
        custom_fields=True,
        includes=("TeamMembers", "Projects"),
    ),
    # Planning entities
    _d(
        "Iteration",
        _PL,
        "Iterations represent sprints or time boxes",
        custom_fields=True,
        includes=("Project", "UserStories", "Tasks", "Bugs"),
    ),
    _d(
        "Release",
        _PL,
        "Releases group work for deployment",
        custom_fields=True,
        includes=("Project", "Features", "UserStories"),
    ),
    _d(
        "TeamIteration",
        _PL,
        "Team-specific iteration planning",
        custom_fields=True,
        includes=("Team", "Iteration"),
    ),
    # System entities
    _d("GeneralUser", _S, "System users", custom_fields=False, includes=("Teams", "Role")),
    _d(
        "EntityState",
        _S,
        "Workflow states",
        custom_fields=False,
        includes=("Process", "EntityType"),
    ),
    _d("Priority", _S, "Priority levels", custom_fields=False),
    _d("Severity", _S, "Bug severity levels", custom_fields=False),
    _d("Role", _S, "User roles", custom_fields=False),
    _d("Process", _S, "Development process templates", custom_fields=False),
)


class EntityRegistry:
    """
    Lookup table of known entity types.
    Starts from STATIC_ENTITY_TYPES; custom types are appended at runtime and
    never removed.
    """

    def __init__(self, descriptors: Iterable[EntityTypeDescriptor] = STATIC_ENTITY_TYPES):
        self._types: Dict[str, EntityTypeDescriptor] = {d.name: d for d in descriptors}

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __len__(self) -> int:
        return len(self._types)

    def all_names(self) -> List[str]:
        return list(self._types)

    def names_by_category(self, category: EntityCategory) -> List[str]:
        return [n for n, d in self._types.items() if d.category == category]

    def assignable_names(self) -> List[str]:
        return self.names_by_category(EntityCategory.ASSIGNABLE)

    def system_names(self) -> List[str]:
        return self.names_by_category(EntityCategory.SYSTEM)

    def is_known(self, name: str) -> bool:
        return name in self._types

    def get(self, name: str) -> Optional[EntityTypeDescriptor]:
        return self._types.get(name)

    def common_includes(self, name: str) -> List[str]:
        info = self._types.get(name)
        return list(info.common_includes) if info else []

    def supports_custom_fields(self, name: str) -> bool:
        info = self._types.get(name)
        return bool(info and info.supports_custom_fields)

    def parent_types(self, name: str) -> List[str]:
        info = self._types.get(name)
        return list(info.parent_types) if info else []

    def register_custom(
        self,
        name: str,
        *,
        description: Optional[str] = None,
        supports_custom_fields: bool = True,
        parent_types: Iterable[str] = (),
        common_includes: Iterable[str] = (),
    ) -> EntityTypeDescriptor:
        """Register a runtime-discovered type; an existing entry is returned unchanged."""
        existing = self._types.get(name)
        if existing is not None:
            return existing
        descriptor = EntityTypeDescriptor(
            name=name,
            category=EntityCategory.CUSTOM,
            description=description or f"Custom entity type: {name}",
            supports_custom_fields=supports_custom_fields,
            parent_types=tuple(parent_types),
            common_includes=tuple(common_includes),
        )
        self._types[name] = descriptor
        return descriptor

    def describe(self) -> str:
        """Category-grouped summary, one line per non-empty category."""
        grouped: Dict[EntityCategory, List[str]] = {}
        for name, info in self._types.items():
            grouped.setdefault(info.category, []).append(name)

        lines = [
            f"{CATEGORY_LABELS[category]}: {', '.join(names)}"
            for category, names in grouped.items()
            if names
        ]
        return "\n".join(lines)


__all__ = [
    "EntityCategory",
    "EntityTypeDescriptor",
    "EntityRegistry",
    "STATIC_ENTITY_TYPES",
    "CATEGORY_LABELS",
]
