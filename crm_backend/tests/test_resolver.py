"""
Tests for module selection, validation and dependency ordering
"""

import pytest

from crm_backend.installation.errors import (
    BadRequestError,
    NotFoundError,
    TemplateErrorCode,
)
from crm_backend.installation.resolver import (
    build_module_graph,
    collect_required_api_names,
    ensure_blueprint_api_names_unique,
    find_dependents,
    resolve_installation_order,
    select_modules,
    sort_modules_by_dependencies,
    validate_against_installed,
    validate_module_conflicts,
    validate_module_dependencies,
)
from crm_backend.models import BlueprintAssociation, BlueprintObject, TemplateModule


def make_module(
    slug,
    depends_on=(),
    conflicts_with=(),
    is_core=False,
    display_order=0,
    name=None,
    objects=(),
    associations=(),
):
    return TemplateModule(
        slug=slug,
        name=name or slug.title(),
        is_core=is_core,
        depends_on=list(depends_on),
        conflicts_with=list(conflicts_with),
        display_order=display_order,
        blueprint_objects=[BlueprintObject(api_name=api_name, name=api_name) for api_name in objects],
        blueprint_associations=[
            BlueprintAssociation(
                api_name=f"{source}_{target}",
                name=f"{source}_{target}",
                source_object_api_name=source,
                target_object_api_name=target,
            )
            for source, target in associations
        ],
    )


def slugs(modules):
    return [module.slug for module in modules]


class TestModuleGraph:
    """Tests for adjacency list construction."""

    def test_dependents_are_reverse_edges(self):
        """Test dependents are the reverse of dependency edges."""
        graph = build_module_graph([
            make_module("core"),
            make_module("inventory", depends_on=["core"]),
            make_module("reporting", depends_on=["core"]),
        ])

        assert graph.slugs == {"core", "inventory", "reporting"}
        assert graph.depends_on["inventory"] == ["core"]
        assert sorted(graph.dependents["core"]) == ["inventory", "reporting"]
        assert graph.dependents["inventory"] == []


class TestSelectModules:
    """Tests for choosing which template modules get installed."""

    def test_core_modules_always_selected(self):
        """Test core modules are always selected."""
        modules = [
            make_module("core", is_core=True),
            make_module("inventory", depends_on=["core"]),
            make_module("reporting"),
        ]

        selected = select_modules(modules, ["inventory"], install_all_modules=False)

        assert slugs(selected) == ["core", "inventory"]

    def test_no_selection_gives_core_only(self):
        """Test an empty selection yields only core modules."""
        modules = [make_module("core", is_core=True), make_module("extra")]

        assert slugs(select_modules(modules, None, False)) == ["core"]

    def test_install_all_takes_precedence(self):
        """Test install_all_modules overrides the slug list."""
        modules = [make_module("core", is_core=True), make_module("a"), make_module("b")]

        selected = select_modules(modules, ["a"], install_all_modules=True)

        assert slugs(selected) == ["core", "a", "b"]

    def test_unknown_slugs_not_found(self):
        """Test unknown slugs are reported as not found."""
        modules = [make_module("core", is_core=True)]

        with pytest.raises(NotFoundError) as exc_info:
            select_modules(modules, ["missing", "core", "ghost"], False)

        assert exc_info.value.code == TemplateErrorCode.MODULE_NOT_FOUND
        assert exc_info.value.detail["missing_slugs"] == ["missing", "ghost"]


class TestValidation:
    """Tests for dependency, conflict and api name checks."""

    def test_missing_dependency_names_edge(self):
        """Test missing dependency errors name the edge."""
        with pytest.raises(BadRequestError) as exc_info:
            validate_module_dependencies([make_module("inventory", depends_on=["core"])])

        assert "inventory -> core" in exc_info.value.message
        assert exc_info.value.code == TemplateErrorCode.MODULE_DEPENDENCY_MISSING

    def test_conflict_names_pair(self):
        """Test conflict errors name the conflicting pair."""
        with pytest.raises(BadRequestError) as exc_info:
            validate_module_conflicts([make_module("a", conflicts_with=["b"]), make_module("b")])

        assert "a x b" in exc_info.value.message
        assert exc_info.value.code == TemplateErrorCode.MODULE_CONFLICT

    def test_conflict_with_unselected_module_is_fine(self):
        """Test a conflict with an unselected module is ignored."""
        validate_module_conflicts([make_module("a", conflicts_with=["b"]), make_module("c")])

    def test_duplicate_api_names_rejected(self):
        """Test duplicate blueprint object api names are rejected."""
        modules = [
            make_module("a", objects=["_contact", "_job"]),
            make_module("b", objects=["_job"]),
        ]

        with pytest.raises(BadRequestError) as exc_info:
            ensure_blueprint_api_names_unique(modules)

        assert exc_info.value.detail["duplicates"] == ["_job"]


class TestDependencyOrdering:
    """Tests for Kahn's algorithm ordering."""

    def test_dependencies_precede_dependents(self):
        """Test dependencies are ordered before dependents."""
        modules = [
            make_module("storage", depends_on=["inventory"], display_order=0),
            make_module("reporting", depends_on=["core", "inventory"], display_order=1),
            make_module("inventory", depends_on=["core"], display_order=2),
            make_module("core", display_order=3),
        ]

        ordered = slugs(sort_modules_by_dependencies(modules))

        assert len(ordered) == len(modules)
        for module in modules:
            for dependency in module.depends_on:
                assert ordered.index(dependency) < ordered.index(module.slug)

    def test_ties_broken_by_display_order_then_name(self):
        """Test ready modules are ordered by display order, then name."""
        modules = [
            make_module("c", display_order=0, name="C"),
            make_module("b", display_order=0, name="B"),
            make_module("a", display_order=1, name="A"),
            make_module("d", depends_on=["c"], display_order=0, name="D"),
        ]

        assert slugs(sort_modules_by_dependencies(modules)) == ["b", "c", "d", "a"]

    def test_cycle_detected(self):
        """Test dependency cycles are detected."""
        modules = [
            make_module("core"),
            make_module("a", depends_on=["b"]),
            make_module("b", depends_on=["a"]),
        ]

        with pytest.raises(BadRequestError) as exc_info:
            sort_modules_by_dependencies(modules)

        assert exc_info.value.code == TemplateErrorCode.CIRCULAR_DEPENDENCY
        assert exc_info.value.message == "Circular module dependencies detected."
        assert exc_info.value.detail["modules"] == ["a", "b"]


class TestResolveInstallationOrder:

    def test_core_installed_before_requested_module(self):
        """Test core is ordered before the requested module."""
        modules = [
            make_module("inventory", depends_on=["core"], display_order=0),
            make_module("core", is_core=True, display_order=1),
        ]

        assert slugs(resolve_installation_order(modules, ["inventory"])) == ["core", "inventory"]

    def test_empty_selection_rejected(self):
        """Test a selection with no core and no requested modules is rejected."""
        with pytest.raises(BadRequestError) as exc_info:
            resolve_installation_order([make_module("extra")], [])

        assert exc_info.value.code == TemplateErrorCode.NO_MODULES_SELECTED

    def test_conflicting_selection_rejected(self):
        """Test a conflicting selection is rejected."""
        modules = [make_module("a", conflicts_with=["b"]), make_module("b")]

        with pytest.raises(BadRequestError, match="a x b"):
            resolve_installation_order(modules, ["a", "b"])


class TestIncrementalChecks:
    """Tests for checking one module against already installed modules."""

    def test_missing_installed_dependency(self):
        """Test a dependency missing from the installed slugs."""
        storage = make_module("storage", depends_on=["inventory"])

        with pytest.raises(BadRequestError) as exc_info:
            validate_against_installed(storage, ["core"])

        assert exc_info.value.detail["missing_dependencies"] == ["inventory"]

    def test_conflict_declared_by_new_module(self):
        """Test a conflict declared by the module being installed."""
        with pytest.raises(BadRequestError) as exc_info:
            validate_against_installed(make_module("a", conflicts_with=["b"]), ["b"])

        assert exc_info.value.code == TemplateErrorCode.MODULE_CONFLICT

    def test_conflict_declared_by_installed_module(self):
        """Test a conflict declared by an installed module."""
        with pytest.raises(BadRequestError) as exc_info:
            validate_against_installed(make_module("b"), ["a"], [make_module("a", conflicts_with=["b"])])

        assert exc_info.value.detail["conflicts"] == ["a"]

    def test_satisfied_module_passes(self):
        """Test a module with satisfied constraints passes."""
        validate_against_installed(
            make_module("inventory", depends_on=["core"]),
            ["core", "reporting"],
            [make_module("core"), make_module("reporting", conflicts_with=["billing"])],
        )

    def test_find_dependents(self):
        """Test installed dependents are found."""
        installed = [
            make_module("core"),
            make_module("inventory", depends_on=["core"]),
            make_module("reporting", depends_on=["core"]),
        ]

        assert sorted(find_dependents("core", installed)) == ["inventory", "reporting"]
        assert find_dependents("reporting", installed) == []

    def test_required_api_names_include_association_endpoints(self):
        """Test required api names include association endpoints."""
        module = make_module(
            "inventory",
            objects=["_inventory_item"],
            associations=[("_job", "_inventory_item")],
        )

        assert collect_required_api_names(module) == ["_inventory_item", "_job"]
