"""Diff engine for calculating changes between desired and current state.

Both sides are normalized representations (tenant -> class -> object). Only
classes the engine is the source of truth for are diffed; everything else is
passed through from the desired side untouched.
"""
import copy
import logging
from typing import Any, Iterable, Iterator, Optional, Protocol, Sequence

from .paths import PropertyPath
from .schema import Change, ChangeType, DiffResult

logger = logging.getLogger(__name__)

# Classes we are the source of truth for. They are diffed, and restored from
# the baseline when a declaration omits them.
DEFAULT_CLASSES_OF_TRUTH = (
    "hostname",
    "DbVariables",
    "DNS",
    "NTP",
    "Provision",
    "VLAN",
    "Trunk",
    "SelfIp",
    "Route",
    "ConfigSync",
    "DeviceGroup",
    "FailoverUnicast",
    "Analytics",
    "ManagementRoute",
    "RouteDomain",
    "Authentication",
    "RemoteAuthRole",
    "SnmpAgent",
    "SnmpTrapEvents",
    "SnmpUser",
    "SnmpCommunity",
    "SnmpTrapDestination",
    "DagGlobals",
    "System",
    "TrafficControl",
    "HTTPD",
    "SSHD",
)


class ChangeTracer(Protocol):
    async def trace(self, changes: list[Change]) -> None:
        ...


def values_equal(lhs: Any, rhs: Any) -> bool:
    """Structural equality that keeps booleans apart from integers."""
    if isinstance(lhs, bool) or isinstance(rhs, bool):
        return type(lhs) is type(rhs) and lhs == rhs
    if isinstance(lhs, dict) and isinstance(rhs, dict):
        return lhs.keys() == rhs.keys() and all(values_equal(lhs[k], rhs[k]) for k in lhs)
    if isinstance(lhs, list) and isinstance(rhs, list):
        return len(lhs) == len(rhs) and all(values_equal(a, b) for a, b in zip(lhs, rhs))
    return lhs == rhs


def deep_diff(lhs: Any, rhs: Any, path: tuple[str, ...] = ()) -> Iterator[Change]:
    """Yield the primitive changes that turn `lhs` into `rhs`.

    Dicts are compared key by key (lhs keys first); anything else, lists
    included, is compared as a whole and reported as a single modification.
    """
    if isinstance(lhs, dict) and isinstance(rhs, dict):
        for key, value in lhs.items():
            if key not in rhs:
                yield Change(ChangeType.DELETE, path + (key,), lhs=value)
            else:
                yield from deep_diff(value, rhs[key], path + (key,))
        for key, value in rhs.items():
            if key not in lhs:
                yield Change(ChangeType.CREATE, path + (key,), rhs=value)
        return

    if not values_equal(lhs, rhs):
        yield Change(ChangeType.MODIFY, path, lhs=lhs, rhs=rhs)


def apply_change(target: dict, change: Change) -> None:
    """Apply one change to `target` in place."""
    path = PropertyPath(change.path)
    if change.kind == ChangeType.DELETE:
        path.delete(target)
    else:
        path.set(target, copy.deepcopy(change.rhs))


def apply_defaults(
    declaration: dict[str, Any],
    original: dict[str, Any],
    classes_of_truth: Iterable[str],
) -> None:
    """
    Restore source-of-truth classes a declaration omits.

    Anything missing (or declared empty) is set back to its baseline value.
    System keeps the declared hostname when one is given.
    """
    for tenant, tenant_original in original.items():
        tenant_declaration = declaration.get(tenant)
        if not isinstance(tenant_declaration, dict) or not isinstance(tenant_original, dict):
            continue
        originals = copy.deepcopy(tenant_original)

        for key in classes_of_truth:
            if key not in originals:
                continue
            item = tenant_declaration.get(key)
            if key not in tenant_declaration or (isinstance(item, dict) and not item):
                tenant_declaration[key] = originals[key]
                if key == "System" and tenant_declaration.get("hostname") and isinstance(originals[key], dict):
                    originals[key].pop("hostname", None)
            elif key == "Authentication" and isinstance(item, dict) and isinstance(originals[key], dict):
                if "remoteUsersDefaults" not in item and "remoteUsersDefaults" in originals[key]:
                    item["remoteUsersDefaults"] = originals[key]["remoteUsersDefaults"]


class DiffEngine:
    """Calculate updates and deletions between two normalized representations."""

    def __init__(
        self,
        classes_of_truth: Sequence[str] = DEFAULT_CLASSES_OF_TRUTH,
        nameless_classes: Iterable[str] = (),
        tracer: Optional[ChangeTracer] = None,
    ):
        """
        Initialize the diff engine.

        Args:
            classes_of_truth: Classes to diff and restore from the baseline
            nameless_classes: Classes stored without object names
            tracer: Optional collaborator that records the acted-upon changes
        """
        self.default_classes = tuple(classes_of_truth)
        # hostname is reconciled separately and never diffed
        self.classes_of_truth = frozenset(c for c in classes_of_truth if c != "hostname")
        self.nameless_classes = frozenset(nameless_classes)
        self.tracer = tracer

    async def process(
        self,
        desired: dict[str, Any],
        current: dict[str, Any],
        original: Optional[dict[str, Any]] = None,
    ) -> DiffResult:
        """
        Calculate the diff between desired and current state.

        Args:
            desired: Parsed declaration (tenant -> class -> object)
            current: Config read from the device, same shape
            original: Baseline config; omitted truth classes are restored from it

        Returns:
            DiffResult with toUpdate, toDelete and the changes acted upon
        """
        to = copy.deepcopy(desired)
        if original:
            apply_defaults(to, original, self.default_classes)

        tenants = [tenant for tenant, value in to.items() if isinstance(value, dict)]
        working = {tenant: copy.deepcopy((current or {}).get(tenant) or {}) for tenant in tenants}
        target = {tenant: to[tenant] for tenant in tenants}

        to_update: dict[str, Any] = {
            tenant: {
                key: copy.deepcopy(value)
                for key, value in target[tenant].items()
                if key not in self.classes_of_truth
            }
            for tenant in tenants
        }
        to_delete: dict[str, Any] = {tenant: {} for tenant in tenants}
        touched: dict[tuple[str, str], list[str]] = {}
        changes: list[Change] = []

        # collected up front: applying a change mutates what deep_diff walks
        for change in list(deep_diff(working, target)):
            if len(change.path) < 2 or change.path[1] not in self.classes_of_truth:
                continue

            apply_change(working, change)
            changes.append(change)

            tenant, schema_class = change.path[0], change.path[1]
            names = touched.setdefault((tenant, schema_class), [])
            if schema_class not in self.nameless_classes:
                if len(change.path) > 2:
                    names.append(change.path[2])
                elif isinstance(change.rhs, dict):
                    # class added as a whole
                    names.extend(change.rhs)

            # deeper paths, and anything under a nameless class, are property deletions
            if (
                change.kind == ChangeType.DELETE
                and len(change.path) == 3
                and schema_class not in self.nameless_classes
            ):
                to_delete[tenant].setdefault(schema_class, {})[change.path[2]] = {}

        for (tenant, schema_class), names in touched.items():
            value = working[tenant].get(schema_class)
            if isinstance(value, dict) and schema_class not in self.nameless_classes:
                to_update[tenant][schema_class] = {
                    name: copy.deepcopy(value[name]) for name in names if name in value
                }
            elif value is not None:
                to_update[tenant][schema_class] = copy.deepcopy(value)
            else:
                to_update[tenant][schema_class] = {}

        # unchanged singletons are re-applied as declared
        for tenant in tenants:
            for schema_class, value in target[tenant].items():
                if (
                    schema_class in self.classes_of_truth
                    and schema_class in self.nameless_classes
                    and (tenant, schema_class) not in touched
                ):
                    to_update[tenant][schema_class] = copy.deepcopy(value)

        logger.info(f"Diff found {len(changes)} changes in {len(touched)} classes")

        if self.tracer is not None:
            try:
                await self.tracer.trace(changes)
            except Exception as e:
                logger.warning(f"Diff trace failed: {e}")

        return DiffResult(to_update=to_update, to_delete=to_delete, changes=changes)


def _brief(value: Any) -> str:
    text = repr(value)
    return text if len(text) <= 60 else text[:57] + "..."


def summarize_diff(diff: DiffResult) -> str:
    """
    Create a human-readable summary of a diff.

    Useful for dry-run output and logging.
    """
    if diff.no_change:
        return "No changes needed - current state matches desired state"

    lines = [f"Changes to apply ({diff.total_changes} total):", ""]
    for change in diff.changes:
        where = "/".join(change.path)
        if change.kind == ChangeType.CREATE:
            lines.append(f"  [+] Create {where}")
            if not isinstance(change.rhs, dict):
                lines.append(f"      Value: {_brief(change.rhs)}")
        elif change.kind == ChangeType.DELETE:
            lines.append(f"  [-] Delete {where}")
        else:
            lines.append(f"  [~] Modify {where}")
            lines.append(f"      {_brief(change.lhs)} -> {_brief(change.rhs)}")

    deletions = [
        f"{tenant}/{schema_class}/{name}"
        for tenant, classes in diff.to_delete.items()
        for schema_class, names in classes.items()
        for name in names
    ]
    if deletions:
        lines.append("")
        lines.append(f"Objects to delete: {', '.join(deletions)}")

    return "\n".join(lines)
