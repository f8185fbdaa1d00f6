from targetprocess_gateway.entity_registry import (
    STATIC_ENTITY_TYPES,
    EntityCategory,
    EntityRegistry,
)


def test_static_table_is_loaded():
    registry = EntityRegistry()
    assert len(registry) == len(STATIC_ENTITY_TYPES) == 20
    assert "UserStory" in registry
    assert registry.get("Bug").category == EntityCategory.ASSIGNABLE
    assert registry.get("Project").category == EntityCategory.PROJECT


def test_category_queries():
    registry = EntityRegistry()
    assert registry.system_names() == [
        "GeneralUser",
        "EntityState",
        "Priority",
        "Severity",
        "Role",
        "Process",
    ]
    assert "Task" in registry.assignable_names()
    assert registry.names_by_category(EntityCategory.PLANNING) == [
        "Iteration",
        "Release",
        "TeamIteration",
    ]


def test_descriptor_lookups():
    registry = EntityRegistry()
    assert registry.parent_types("UserStory") == ["Feature", "Epic"]
    assert "EntityState" in registry.common_includes("Bug")
    assert registry.supports_custom_fields("Task")
    assert not registry.supports_custom_fields("Priority")
    assert registry.parent_types("Nope") == []
    assert registry.common_includes("Nope") == []
    assert registry.get("Nope") is None


def test_register_custom_is_append_only_and_idempotent():
    registry = EntityRegistry()
    first = registry.register_custom("Risk", description="Project risks")
    again = registry.register_custom("Risk", description="changed")

    assert first is again
    assert first.category == EntityCategory.CUSTOM
    assert first.description == "Project risks"
    assert len(registry) == 21
    assert registry.all_names()[-1] == "Risk"


def test_register_custom_never_overrides_static_type():
    registry = EntityRegistry()
    descriptor = registry.register_custom("Bug")
    assert descriptor.category == EntityCategory.ASSIGNABLE


def test_registries_are_isolated():
    a = EntityRegistry()
    b = EntityRegistry()
    a.register_custom("Risk")
    assert "Risk" in a
    assert "Risk" not in b


def test_describe_groups_by_category():
    registry = EntityRegistry()
    registry.register_custom("Risk")
    text = registry.describe()
    assert "Work Items: UserStory, Bug" in text
    assert text.splitlines()[-1] == "Custom: Risk"
