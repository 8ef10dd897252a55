"""Config manager: reads live device state into declaration-comparable form.

For every active catalog entry the config manager queries the device, strips
bookkeeping keys, maps properties, applies per-class fixups and stores the
result under tenant "Common" by schema class and object name. Referenced
collections are fetched in a second concurrent round and spliced in. Finally
the per-device baseline is widened and both the device state and the
baseline store are updated.

Usage:
    manager = ConfigManager(catalog, device, FileBaselineStore())
    state = DeviceState(task_id="1234")
    await manager.get(declaration, state)
    print(state.current_config["Common"]["VLAN"])
"""
import asyncio
import copy
import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qsl, urlsplit

from ..config.catalog import Catalog, MappingDescriptor, PROVISION_PATH, PropertyRule, SchemaMerge
from ..config_store.store import BaselineStore
from ..devices.base import DeviceReadError, ManagedDevice, QueryOptions, ReferenceResolutionError
from ..utils.connection import SHORT_RETRY
from ..utils.logging_config import get_task_logger, timed
from .fixups import FixupContext, Phase, apply_fixup
from .mapper import PropertyMapper, strip_common
from .schema import DeviceState

BOOKKEEPING_KEYS = ("kind", "selfLink")

_SKIPPED = object()


class MergeConflictError(Exception):
    """A schema merge would overwrite an existing property."""
    pass


def merge_schema(target: dict, value: Any, merge: SchemaMerge) -> Any:
    """Fold `value` into `target` according to a schema merge descriptor.

    Args:
        target: Class object being built
        value: Mapped item to fold in
        merge: Path and action of the merge

    Returns:
        The merged class object (the value itself for a path-less replace)

    Raises:
        MergeConflictError: If a path-less "add" would overwrite a property
    """
    omitted = value is None or (isinstance(value, dict) and not value)
    if merge.skip_when_omitted and omitted:
        return target

    path = list(merge.path)
    key = path.pop() if path else None
    pointer = target
    for segment in path:
        if not isinstance(pointer.get(segment), dict):
            pointer[segment] = {}
        pointer = pointer[segment]

    if merge.action == "add":
        if key is None:
            for prop, prop_value in (value or {}).items():
                if prop in pointer:
                    raise MergeConflictError(
                        f"Cannot overwrite property in a schema merge '{prop}'"
                    )
                pointer[prop] = prop_value
            return target
        if not isinstance(pointer.get(key), dict):
            pointer[key] = {}
        if isinstance(value, dict):
            pointer[key].update(value)
        return target

    if key is None:
        return value
    pointer[key] = value
    return target


def strip_bookkeeping(item: Any, nameless: bool = False) -> Any:
    """Drop kind, selfLink and *Reference keys (and name for nameless items), recursively."""
    if isinstance(item, list):
        return [strip_bookkeeping(element, nameless) for element in item]
    if not isinstance(item, dict):
        return item
    return {
        key: strip_bookkeeping(value, nameless)
        for key, value in item.items()
        if key not in BOOKKEEPING_KEYS
        and not key.endswith("Reference")
        and not (nameless and key == "name")
    }


def should_ignore(item: dict, ignore: tuple[tuple[str, str], ...]) -> bool:
    """True when any ignore rule's regex matches the item's field."""
    for field_name, regex in ignore:
        value = item.get(field_name)
        if value is not None and re.search(regex, str(value)):
            return True
    return False


@dataclass
class _ReferenceJob:
    """A referenced collection to fetch and splice into a stored object."""
    path: str
    params: dict[str, str]
    select: list[str]
    schema_class: str
    object_name: Optional[str]
    merge_path: tuple[str, ...]
    target: str
    rules: tuple[PropertyRule, ...]


class ConfigManager:
    """Reads the current configuration of one device."""

    def __init__(
        self,
        catalog: Catalog,
        device: ManagedDevice,
        baseline_store: BaselineStore,
        translate_to_new_id: bool = False,
    ):
        self.catalog = catalog
        self.device = device
        self.baseline_store = baseline_store
        self.translate_to_new_id = translate_to_new_id
        self.log = get_task_logger(__name__)

    @property
    def device_id(self) -> str:
        return self.device.device_id

    @timed("read_current")
    async def get(self, declaration: dict[str, Any], state: DeviceState) -> None:
        """
        Read the device and update `state` and the baseline store.

        Args:
            declaration: Declaration being applied ({} when only inspecting)
            state: Per-device state; replaced fields only on success

        Raises:
            DeviceReadError: If a device query fails
            DeviceNameError: If the device's own name cannot be resolved
            ReferenceResolutionError: If a referenced collection cannot be read
            MergeConflictError: If schema merges collide
        """
        self.log = get_task_logger(__name__, state.task_id)
        try:
            identity = await self.device.get_device_identity()
            mapper = PropertyMapper(self.translate_to_new_id, identity.version)
            provisioned = await self._provisioned_modules()
            self.log.debug(f"Provisioned modules: {sorted(provisioned)}")

            def is_active(descriptor: MappingDescriptor) -> bool:
                return descriptor.required_module is None or descriptor.required_module in provisioned

            tokens = {"{{hostName}}": identity.hostname}
            if any(is_active(d) and d.needs_device_name for d in self.catalog):
                tokens["{{deviceName}}"] = await self.device.resolve_device_name(identity.hostname)

            results = await asyncio.gather(*(
                self._query(descriptor, tokens) if is_active(descriptor) else _skipped()
                for descriptor in self.catalog
            ))

            db_variables = self._db_variables_of_interest(declaration, state)
            current: dict[str, Any] = {}
            jobs: list[_ReferenceJob] = []
            for descriptor, result in zip(self.catalog, results):
                self._store_result(descriptor, result, declaration, current, jobs, mapper, db_variables)

            if jobs:
                self.log.debug(f"Resolving {len(jobs)} references")
                fetched = await asyncio.gather(*(self._fetch_reference(job) for job in jobs))
                for job, result in zip(jobs, fetched):
                    self._splice_reference(current, job, result, mapper)

            self._finalize(current)

            current_config = {"Common": current}
            config_id = identity.machine_id or self.device.device_id
            original = self._updated_baseline(config_id, current_config, state)
        except Exception as e:
            self.log.error(f"Error getting current config: {e}")
            raise

        state.current_config = current_config
        state.original_config = original
        self.baseline_store.set_baseline(config_id, original)
        self.log.info(f"Read {len(current)} classes from {self.device.device_id}")

    async def _provisioned_modules(self) -> set[str]:
        items = await self.device.list_objects(PROVISION_PATH, ["name", "level"], SHORT_RETRY)
        return {item["name"] for item in items or [] if item.get("level", "none") != "none"}

    async def _query(self, descriptor: MappingDescriptor, tokens: dict[str, str]) -> Any:
        path = descriptor.path
        for token, value in tokens.items():
            path = path.replace(token, value)
        options = QueryOptions(
            partition_filter=None if descriptor.partitions else "Common",
            silent=descriptor.silent,
        )
        return await self.device.list_objects(path, descriptor.select_fields(), SHORT_RETRY, options)

    def _db_variables_of_interest(self, declaration: dict, state: DeviceState) -> set[str]:
        interest: set[str] = set()
        previous = (state.current_config or {}).get("Common", {}).get("DbVariables")
        if isinstance(previous, dict):
            interest.update(previous)
        common = declaration.get("Common") if isinstance(declaration, dict) else None
        for value in (common or {}).values():
            if isinstance(value, dict) and value.get("class") == "DbVariables":
                interest.update(key for key in value if key != "class")
        return interest

    def _store_result(
        self,
        descriptor: MappingDescriptor,
        result: Any,
        declaration: dict,
        current: dict,
        jobs: list[_ReferenceJob],
        mapper: PropertyMapper,
        db_variables: set[str],
    ) -> None:
        schema_class = descriptor.schema_class
        if result is _SKIPPED:
            if schema_class and schema_class not in current and _declares_class(declaration, schema_class):
                current[schema_class] = {}
            return

        if not schema_class:
            if isinstance(result, dict):
                current.update(strip_bookkeeping(result, nameless=True))
            return

        if isinstance(result, list):
            if not result and schema_class not in current:
                current[schema_class] = {}
            for raw in result:
                self._store_item(descriptor, raw, current, jobs, mapper, db_variables)
        elif isinstance(result, dict):
            self._store_object(descriptor, result, current, jobs, mapper)

    def _context(self, descriptor: MappingDescriptor, name: Optional[str]) -> FixupContext:
        return FixupContext(descriptor, self.translate_to_new_id, name)

    def _store_item(
        self,
        descriptor: MappingDescriptor,
        raw: dict,
        current: dict,
        jobs: list[_ReferenceJob],
        mapper: PropertyMapper,
        db_variables: set[str],
    ) -> None:
        if should_ignore(raw, descriptor.ignore):
            return
        if descriptor.partitions and raw.get("partition") not in descriptor.partitions:
            return

        schema_class = descriptor.schema_class
        name = strip_common(raw.get("name"))
        if schema_class == "DbVariables" and name not in db_variables:
            return

        ctx = self._context(descriptor, name)
        item = apply_fixup(schema_class, Phase.RAW, copy.deepcopy(raw), ctx)
        item.pop("partition", None)
        patched = mapper.map_properties(
            strip_bookkeeping(item, descriptor.nameless),
            descriptor.properties,
            descriptor.single_value,
        )

        if isinstance(patched, dict):
            renamed = self.translate_to_new_id and descriptor.has_name_override
            if not descriptor.nameless and "name" in patched and not renamed:
                patched["name"] = name
            patched = apply_fixup(schema_class, Phase.ITEM, patched, ctx)
            if patched is None:
                return

        if descriptor.schema_merge is not None:
            current[schema_class] = merge_schema(current.get(schema_class) or {}, patched, descriptor.schema_merge)
            self._queue_references(descriptor, raw, None, jobs)
        else:
            current.setdefault(schema_class, {})[name] = patched
            self._queue_references(descriptor, raw, name, jobs)

    def _store_object(
        self,
        descriptor: MappingDescriptor,
        raw: dict,
        current: dict,
        jobs: list[_ReferenceJob],
        mapper: PropertyMapper,
    ) -> None:
        if should_ignore(raw, descriptor.ignore):
            return

        schema_class = descriptor.schema_class
        ctx = self._context(descriptor, strip_common(raw.get("name")))
        item = apply_fixup(schema_class, Phase.RAW, copy.deepcopy(raw), ctx)
        patched = mapper.map_properties(
            strip_bookkeeping(item, descriptor.nameless),
            descriptor.properties,
            descriptor.single_value,
        )
        if isinstance(patched, dict):
            patched = apply_fixup(schema_class, Phase.OBJECT, patched, ctx)
        if patched is None:
            return

        if descriptor.schema_merge is not None:
            current[schema_class] = merge_schema(current.get(schema_class) or {}, patched, descriptor.schema_merge)
        else:
            current[schema_class] = patched
        self._queue_references(descriptor, raw, None, jobs)

    def _queue_references(
        self,
        descriptor: MappingDescriptor,
        raw: dict,
        object_name: Optional[str],
        jobs: list[_ReferenceJob],
    ) -> None:
        for prop, value in raw.items():
            rules = descriptor.references.get(prop)
            if rules is None or not isinstance(value, dict) or not value.get("link"):
                continue

            parts = urlsplit(value["link"])
            path = parts.path
            if path.startswith("/mgmt"):
                path = path[len("/mgmt"):]
            params = {k: v for k, v in parse_qsl(parts.query) if k != "$select"}
            select = [rule.id for rule in rules]
            if "name" not in select:
                select.append("name")

            target = prop[:-len("Reference")] if prop.endswith("Reference") else prop
            if self.translate_to_new_id:
                rule = descriptor.rule(target)
                if rule is not None and rule.new_id:
                    target = rule.new_id

            jobs.append(_ReferenceJob(
                path=path,
                params=params,
                select=select,
                schema_class=descriptor.schema_class,
                object_name=object_name,
                merge_path=descriptor.schema_merge.path if descriptor.schema_merge else (),
                target=target,
                rules=rules,
            ))

    async def _fetch_reference(self, job: _ReferenceJob) -> Any:
        try:
            return await self.device.list_objects(
                job.path,
                job.select,
                SHORT_RETRY,
                QueryOptions(partition_filter=None, params=job.params),
            )
        except DeviceReadError as e:
            raise ReferenceResolutionError(
                f"Failed to resolve {job.target} of {job.schema_class}: {e}"
            ) from e

    def _splice_reference(self, current: dict, job: _ReferenceJob, result: Any, mapper: PropertyMapper) -> None:
        container = current.get(job.schema_class)
        if job.object_name is not None and isinstance(container, dict):
            container = container.get(job.object_name)
        for segment in job.merge_path:
            container = container.get(segment) if isinstance(container, dict) else None
        if not isinstance(container, dict):
            self.log.warning(f"No place to store {job.target} of {job.schema_class}")
            return

        if isinstance(result, list):
            container[job.target] = [
                mapper.map_properties(strip_bookkeeping(element), job.rules) for element in result
            ]
        elif isinstance(result, dict):
            container[job.target] = mapper.map_properties(strip_bookkeeping(result), job.rules)

    def _finalize(self, current: dict) -> None:
        for schema_class, value in current.items():
            descriptors = self.catalog.for_class(schema_class)
            if descriptors and isinstance(value, dict):
                apply_fixup(schema_class, Phase.FINALIZE, value, self._context(descriptors[0], None))

    def _updated_baseline(self, config_id: str, current_config: dict, state: DeviceState) -> dict:
        """Baseline widened with what this read observed."""
        stored = self.baseline_store.get_baseline(config_id)
        if stored is None and state.original_config:
            self.log.info(f"Migrating baseline for {config_id} from device state")
            stored = state.original_config

        original = copy.deepcopy(stored if stored is not None else current_config)
        common = original.setdefault("Common", {})
        current = current_config["Common"]

        # DB variables first seen now join the baseline
        current_db = current.get("DbVariables")
        if isinstance(current_db, dict):
            original_db = common.setdefault("DbVariables", {})
            for name, value in current_db.items():
                if name not in original_db:
                    original_db[name] = value

        # application data disk can only grow
        current_disk = (current.get("Disk") or {}).get("applicationData")
        if current_disk:
            original_disk = common.get("Disk") or {}
            if current_disk > (original_disk.get("applicationData") or 0):
                common["Disk"] = {**original_disk, "applicationData": current_disk}

        provision = current.get("Provision")
        if isinstance(provision, dict) and provision:
            provisioned = {module for module, level in provision.items() if level != "none"}
            deprovisioned = {module for module, level in provision.items() if level == "none"}
            for descriptor in self.catalog:
                schema_class = descriptor.schema_class
                if not schema_class:
                    continue
                if not descriptor.required_module or descriptor.required_module in provisioned:
                    common.setdefault(schema_class, {})
                elif descriptor.required_module in deprovisioned and common.get(schema_class) == {}:
                    del common[schema_class]

        return original


async def _skipped() -> Any:
    return _SKIPPED


def _declares_class(declaration: dict, schema_class: str) -> bool:
    common = declaration.get("Common") if isinstance(declaration, dict) else None
    if not isinstance(common, dict):
        return False
    return any(
        isinstance(value, dict) and value.get("class") == schema_class
        for value in common.values()
    )
