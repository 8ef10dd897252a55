"""Parser for onboarding declarations.

Flattens a declaration into tenant -> schema class -> object form and renames
declaration property ids back to device-native ids, so the result can be
compared directly with what the config manager reads from the device.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from ..config.catalog import Catalog, KNOWN_MODULES, MappingDescriptor, PropertyRule
from ..utils.logging_config import get_task_logger
from .mapper import map_to_device
from .paths import PropertyPath, dereference_pointer
from .schema import ParseResult


class ParseError(Exception):
    """Error parsing a declaration."""
    pass


@dataclass
class _IdUpdate:
    """Bookkeeping for one update_ids pass over an object."""
    property_name: Optional[str]
    declared_name: Optional[str]
    ids_to_delete: list[str] = field(default_factory=list)
    written: set[str] = field(default_factory=set)

    def flush(self, obj: dict) -> None:
        for dotted in self.ids_to_delete:
            head = dotted.split(".")[0]
            if head not in self.written:
                obj.pop(head, None)


class DeclarationParser:
    """Parse a declaration into per-tenant, per-class objects."""

    def __init__(
        self,
        catalog: Catalog,
        modules: Sequence[str] = KNOWN_MODULES,
        task_id: Optional[str] = None,
    ):
        self.catalog = catalog
        self.modules = tuple(modules)
        self.nameless_classes = catalog.nameless_classes
        self.log = get_task_logger(__name__, task_id)

    def parse(self, declaration: dict[str, Any]) -> ParseResult:
        """
        Parse a declaration.

        Args:
            declaration: Declaration body (class Device)

        Returns:
            ParseResult with tenant names and the flattened declaration

        Raises:
            ParseError: If the declaration cannot be parsed
        """
        if not isinstance(declaration, dict):
            raise ParseError("Declaration must be an object")

        try:
            tenants = [
                key for key, value in declaration.items()
                if key not in ("schemaVersion", "class")
                and isinstance(value, dict)
                and value.get("class") == "Tenant"
            ]

            parsed: dict[str, Any] = {}
            for tenant in tenants:
                tenant_parsed: dict[str, Any] = {}
                self._parse_container(declaration, declaration[tenant], tenant_parsed)
                parsed[tenant] = tenant_parsed
        except Exception as e:
            self.log.error(f"Error parsing declaration: {e}")
            raise

        self.log.debug(f"Parsed tenants: {tenants}")
        return ParseResult(tenants=tenants, parsed_declaration=parsed)

    def _parse_container(self, root: dict, container: dict, parsed: dict) -> None:
        """Parse one tenant body (or a classless wrapper inside it) into `parsed`."""
        for key, value in container.items():
            if key == "class":
                continue

            if not isinstance(value, dict):
                # loose values such as hostname pass straight through
                parsed[key] = copy.deepcopy(value)
                continue

            schema_class = value.get("class")
            if schema_class is None:
                # classless wrapper; its classes land at this level
                self._parse_container(root, value, parsed)
                continue
            if not isinstance(schema_class, str):
                raise ParseError(f"Invalid class for {key}: {schema_class!r}")

            obj = copy.deepcopy(value)
            del obj["class"]
            obj = self._dereference(root, obj)

            if schema_class in self.nameless_classes:
                obj = self._assign_defaults(schema_class, obj)
                updated = self.update_ids(schema_class, obj)
                parsed.setdefault(schema_class, {}).update(updated)
            else:
                if not obj.get("name"):
                    obj["name"] = key
                updated = self.update_ids(schema_class, obj, key)
                parsed.setdefault(schema_class, {})[key] = updated

    def _assign_defaults(self, schema_class: str, obj: dict) -> dict:
        if schema_class == "Provision":
            for module in self.modules:
                if not obj.get(module):
                    obj[module] = "none"
        return obj

    def _dereference(self, root: dict, value: Any) -> Any:
        """Replace string pointers with the string they point at."""
        if isinstance(value, dict):
            return {k: self._dereference(root, v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._dereference(root, v) for v in value]
        if isinstance(value, str) and value.startswith("/"):
            target = dereference_pointer(root, value)
            if isinstance(target, str):
                if target == value:
                    raise ParseError(f"Pointer {value} refers to itself")
                return target
        return value

    def update_ids(
        self,
        schema_class: str,
        obj: dict[str, Any],
        property_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """Rename declaration property ids to device-native ids.

        Args:
            schema_class: Class the object belongs to
            obj: Object body from the declaration
            property_name: Object's name within its tenant

        Returns:
            Updated copy of the object
        """
        descriptors = self.catalog.for_class(schema_class)
        if not descriptors:
            return obj

        updated = copy.deepcopy(obj)
        update = _IdUpdate(property_name=property_name, declared_name=obj.get("name"))
        for descriptor in descriptors:
            for rule in descriptor.properties:
                self._update_property(rule, updated, update, descriptor)
        update.flush(updated)
        return updated

    def _update_property(
        self,
        rule: PropertyRule,
        item: dict,
        update: _IdUpdate,
        descriptor: MappingDescriptor,
    ) -> None:
        merge_path = descriptor.schema_merge.path if descriptor.schema_merge else ()

        if not merge_path:
            value = map_to_device(PropertyPath.from_dotted(rule.declaration_id).get(item), rule)
            if value is not None:
                item[rule.id] = value
                update.written.add(rule.id)

            # some classes let the declaration spell the device name via `name`
            if rule.new_id == "name":
                item["name"] = update.property_name or update.declared_name
            elif rule.new_id and rule.new_id not in update.ids_to_delete:
                update.ids_to_delete.append(rule.new_id)
        else:
            base = PropertyPath(merge_path)
            _update_value(
                rule,
                item,
                base.child(*rule.id.split(".")),
                base.child(*rule.declaration_id.split(".")),
            )

        if rule.transform:
            for trans in rule.transform:
                current = item.get(rule.id)
                if isinstance(current, list):
                    for sub in current:
                        if isinstance(sub, dict):
                            _update_value(
                                trans,
                                sub,
                                PropertyPath.from_dotted(trans.id),
                                PropertyPath.from_dotted(trans.new_id) if trans.new_id else None,
                            )
                    continue

                dotted_id = PropertyPath((rule.id, *trans.id.split(".")))
                dotted_new_id = PropertyPath((rule.id, *trans.declaration_id.split(".")))
                if rule.up_level:
                    # declaration holds a single element, lifted out of its list
                    dotted_id = dotted_id.drop(rule.up_level)
                    dotted_new_id = dotted_new_id.drop(rule.up_level)
                _update_value(trans, item, dotted_id, dotted_new_id)

        if rule.dereference_id and item.get(rule.dereference_id):
            target = item[rule.dereference_id]
            for referenced in descriptor.references.get(rule.id, ()):
                if isinstance(target, list):
                    for sub in target:
                        if not isinstance(sub, dict):
                            continue
                        sub_update = _IdUpdate(update.property_name, update.declared_name)
                        self._update_property(referenced, sub, sub_update, descriptor)
                        sub_update.flush(sub)
                elif isinstance(target, dict):
                    self._update_property(referenced, target, update, descriptor)


def _update_value(
    rule: PropertyRule,
    item: dict,
    dotted_id: PropertyPath,
    dotted_new_id: Optional[PropertyPath],
) -> None:
    value = map_to_device((dotted_new_id or dotted_id).get(item), rule)
    if value is None:
        return
    dotted_id.set(item, value)
    if dotted_new_id is not None and dotted_new_id != dotted_id:
        dotted_new_id.delete(item)

