"""
Dependency Resolver

Validates module dependency/conflict constraints and produces a deterministic
install order. Everything here is pure: it reads module blueprints already
loaded by the caller and never touches the database.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from crm_backend.installation.errors import (
    BadRequestError,
    NotFoundError,
    TemplateErrorCode,
)
from crm_backend.models import TemplateModule

logger = logging.getLogger(__name__)


# =============================================================================
# Module Graph
# =============================================================================

@dataclass
class ModuleGraph:
    """Dependency and conflict edges between modules, keyed by slug."""
    modules: dict[str, TemplateModule] = field(default_factory=dict)
    depends_on: dict[str, list[str]] = field(default_factory=dict)
    dependents: dict[str, list[str]] = field(default_factory=dict)
    conflicts_with: dict[str, list[str]] = field(default_factory=dict)

    @property
    def slugs(self) -> set[str]:
        return set(self.modules)


def build_module_graph(modules: Iterable[TemplateModule]) -> ModuleGraph:
    """Build a fresh adjacency-list graph from module rows."""
    graph = ModuleGraph()
    for module in modules:
        graph.modules[module.slug] = module
        graph.depends_on[module.slug] = list(module.depends_on or [])
        graph.conflicts_with[module.slug] = list(module.conflicts_with or [])
        graph.dependents.setdefault(module.slug, [])

    for slug, dependencies in graph.depends_on.items():
        for dependency in dependencies:
            graph.dependents.setdefault(dependency, []).append(slug)

    return graph


def module_sort_key(module: TemplateModule) -> tuple[int, str]:
    return (module.display_order or 0, module.name or "")


# =============================================================================
# Selection
# =============================================================================

def select_modules(
    modules: Sequence[TemplateModule],
    requested_slugs: Sequence[str] | None,
    install_all_modules: bool,
) -> list[TemplateModule]:
    """
    Pick the modules to install from a template.

    Core modules are always included. `install_all_modules` takes precedence
    over any explicit slug list.
    """
    if install_all_modules:
        return list(modules)

    requested = list(requested_slugs or [])
    known_slugs = {module.slug for module in modules}
    missing_slugs = [slug for slug in requested if slug not in known_slugs]
    if missing_slugs:
        raise NotFoundError(
            f"Module slug(s) not found: {', '.join(missing_slugs)}",
            code=TemplateErrorCode.MODULE_NOT_FOUND,
            detail={"missing_slugs": missing_slugs},
        )

    requested_set = set(requested)
    selected = [module for module in modules if module.is_core]
    selected_slugs = {module.slug for module in selected}
    for module in modules:
        if module.slug in requested_set and module.slug not in selected_slugs:
            selected.append(module)
            selected_slugs.add(module.slug)

    return selected


# =============================================================================
# Validation
# =============================================================================

def ensure_blueprint_api_names_unique(modules: Sequence[TemplateModule]) -> None:
    """Reject selections where two blueprint objects share an api name."""
    seen: set[str] = set()
    duplicates: list[str] = []

    for module in modules:
        for blueprint_object in module.blueprint_objects or []:
            api_name = blueprint_object.api_name
            if api_name in seen:
                if api_name not in duplicates:
                    duplicates.append(api_name)
            else:
                seen.add(api_name)

    if duplicates:
        raise BadRequestError(
            f"Duplicate blueprint object apiName values: {', '.join(duplicates)}",
            code=TemplateErrorCode.OBJECT_API_NAME_TAKEN,
            detail={"duplicates": duplicates},
        )


def validate_module_dependencies(modules: Sequence[TemplateModule]) -> None:
    """Every dependency of a selected module must also be selected."""
    graph = build_module_graph(modules)

    missing_edges: list[str] = []
    for slug, dependencies in graph.depends_on.items():
        for dependency in dependencies:
            if dependency not in graph.modules:
                missing_edges.append(f"{slug} -> {dependency}")

    if missing_edges:
        raise BadRequestError(
            f"Missing module dependencies: {', '.join(missing_edges)}",
            code=TemplateErrorCode.MODULE_DEPENDENCY_MISSING,
            detail={"missing": missing_edges},
        )


def validate_module_conflicts(modules: Sequence[TemplateModule]) -> None:
    """No selected module may conflict with another selected module."""
    graph = build_module_graph(modules)

    conflicts: list[str] = []
    for slug, conflicting in graph.conflicts_with.items():
        for other in conflicting:
            if other in graph.modules:
                conflicts.append(f"{slug} x {other}")

    if conflicts:
        raise BadRequestError(
            f"Module conflicts detected: {', '.join(conflicts)}",
            code=TemplateErrorCode.MODULE_CONFLICT,
            detail={"conflicts": conflicts},
        )


# =============================================================================
# Ordering
# =============================================================================

def sort_modules_by_dependencies(modules: Sequence[TemplateModule]) -> list[TemplateModule]:
    """
    Order modules so that every dependency precedes its dependents.

    Kahn's algorithm; ties among ready modules are broken by
    (display_order, name) so the result is deterministic.
    """
    graph = build_module_graph(modules)

    in_degree: dict[str, int] = {}
    for slug, dependencies in graph.depends_on.items():
        for dependency in dependencies:
            if dependency not in graph.modules:
                raise BadRequestError(
                    f"Dependency '{dependency}' for module '{slug}' is not selected.",
                    code=TemplateErrorCode.MODULE_DEPENDENCY_MISSING,
                    detail={"module": slug, "dependency": dependency},
                )
        in_degree[slug] = len(dependencies)

    queue = sorted(
        (module for module in modules if in_degree[module.slug] == 0),
        key=module_sort_key,
    )
    ordered: list[TemplateModule] = []

    while queue:
        current = queue.pop(0)
        ordered.append(current)

        became_ready = False
        for dependent in graph.dependents.get(current.slug, []):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(graph.modules[dependent])
                became_ready = True
        if became_ready:
            queue.sort(key=module_sort_key)

    if len(ordered) != len(graph.modules):
        stuck = sorted(slug for slug, degree in in_degree.items() if degree > 0)
        raise BadRequestError(
            "Circular module dependencies detected.",
            code=TemplateErrorCode.CIRCULAR_DEPENDENCY,
            detail={"modules": stuck},
        )

    return ordered


def resolve_installation_order(
    modules: Sequence[TemplateModule],
    requested_slugs: Sequence[str] | None = None,
    install_all_modules: bool = False,
) -> list[TemplateModule]:
    """Select, validate and order the modules of a full template install."""
    selected = select_modules(modules, requested_slugs, install_all_modules)
    if not selected:
        raise BadRequestError(
            "No template modules were selected for installation.",
            code=TemplateErrorCode.NO_MODULES_SELECTED,
        )

    ensure_blueprint_api_names_unique(selected)
    validate_module_dependencies(selected)
    validate_module_conflicts(selected)

    ordered = sort_modules_by_dependencies(selected)
    logger.debug(f"Resolved install order: {[module.slug for module in ordered]}")
    return ordered


# =============================================================================
# Incremental installs
# =============================================================================

def validate_against_installed(
    module: TemplateModule,
    installed_slugs: Sequence[str],
    installed_modules: Sequence[TemplateModule] = (),
) -> None:
    """
    Check a single module against what the company already has.

    Its dependencies must all be among `installed_slugs`, and conflicts are
    checked in both directions: the module's own `conflicts_with` against
    the installed slugs, and the `conflicts_with` of each installed module
    against the module.
    """
    missing = [slug for slug in module.depends_on or [] if slug not in installed_slugs]
    if missing:
        raise BadRequestError(
            f"Module '{module.slug}' depends on [{', '.join(missing)}].",
            code=TemplateErrorCode.MODULE_DEPENDENCY_MISSING,
            detail={"module": module.slug, "missing_dependencies": missing},
        )

    conflicts = [slug for slug in module.conflicts_with or [] if slug in installed_slugs]
    if conflicts:
        raise BadRequestError(
            f"Module '{module.slug}' conflicts with [{', '.join(conflicts)}].",
            code=TemplateErrorCode.MODULE_CONFLICT,
            detail={"module": module.slug, "conflicts": conflicts},
        )

    conflicting_installed = [
        installed.slug
        for installed in installed_modules
        if module.slug in (installed.conflicts_with or [])
    ]
    if conflicting_installed:
        raise BadRequestError(
            f"Module '{module.slug}' conflicts with [{', '.join(conflicting_installed)}].",
            code=TemplateErrorCode.MODULE_CONFLICT,
            detail={"module": module.slug, "conflicts": conflicting_installed},
        )


def find_dependents(module_slug: str, installed_modules: Sequence[TemplateModule]) -> list[str]:
    """Slugs of installed modules that declare a dependency on `module_slug`."""
    graph = build_module_graph(installed_modules)
    return [
        slug
        for slug in graph.dependents.get(module_slug, [])
        if slug != module_slug
    ]


def collect_required_api_names(module: TemplateModule) -> list[str]:
    """Object api names a module creates or references through associations."""
    api_names: list[str] = []

    def _add(name: str) -> None:
        if name not in api_names:
            api_names.append(name)

    for blueprint_object in module.blueprint_objects or []:
        _add(blueprint_object.api_name)
    for association in module.blueprint_associations or []:
        _add(association.source_object_api_name)
        _add(association.target_object_api_name)

    return api_names
