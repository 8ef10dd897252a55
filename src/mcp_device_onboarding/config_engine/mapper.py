"""Property mapping between device-native values and declaration values.

Two directions share one set of catalog rules:

- map_to_declaration(): device value -> declaration value
- map_to_device(): declaration value -> device value

PropertyMapper applies a rule list to a whole device item. It runs in one of
two modes. Reconcile mode keeps device property ids and re-encodes booleans as
the device's own sentinels, so its output can be diffed directly against a
parsed declaration. Translate mode renames to declaration ids and emits real
booleans and declaration units, which is what the inspection mapper needs.
"""
import copy
import re
from typing import Any, Optional, Sequence

from ..config.catalog import PropertyRule
from .paths import PropertyPath

COMMON_PREFIX = "/Common/"

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def strip_common(value: Any) -> Any:
    """Drop a leading /Common/ partition prefix from a string."""
    if isinstance(value, str) and value.startswith(COMMON_PREFIX):
        return value[len(COMMON_PREFIX):]
    return value


def parse_int(value: Any) -> Any:
    """Leading-integer parse; non-numeric values pass through unchanged."""
    if isinstance(value, bool) or isinstance(value, int):
        return value
    if isinstance(value, str):
        match = _INT_PREFIX.match(value)
        if match:
            return int(match.group(1))
    return value


def version_tuple(version: str) -> tuple[int, ...]:
    """'15.1.0.4' -> (15, 1, 0, 4); trailing non-numeric parts are ignored."""
    parts = []
    for part in version.split("."):
        match = _INT_PREFIX.match(part)
        if not match:
            break
        parts.append(int(match.group(1)))
    return tuple(parts)


def map_truth(value: Any, rule: PropertyRule) -> bool:
    """True only when the device value equals the rule's truth sentinel."""
    if not value:
        return False
    return value == rule.truth


def from_device_units(value: Any, rule: PropertyRule) -> Any:
    """Scale a device value by the rule multiplier; the zero value maps to 0."""
    if rule.zero_value is not None and value == rule.zero_value:
        return 0
    parsed = parse_int(value)
    if isinstance(parsed, int) and not isinstance(parsed, bool):
        return parsed * rule.multiplier
    return value


def map_to_declaration(value: Any, rule: PropertyRule) -> Any:
    """Convert one device-native value to its declaration form.

    Applies, in order: truth mapping, /Common/ stripping (unless retained),
    unit conversion and integer parsing.
    """
    if rule.truth is not None:
        value = map_truth(value, rule)
    elif not rule.retain_common:
        value = strip_common(value)

    if rule.multiplier:
        value = from_device_units(value, rule)

    if rule.string_to_int and value is not None:
        value = parse_int(value)
    return value


def map_to_device(value: Any, rule: PropertyRule) -> Any:
    """Convert one declaration value to its device-native form.

    Booleans become the rule's sentinels. An omitted value becomes the
    falsehood sentinel unless the rule skips omitted values. Unit conversion
    divides by the multiplier, with zero mapping to the rule's zero value.
    """
    if value is True and rule.truth is not None:
        return rule.truth
    if value is False and rule.falsehood is not None:
        return rule.falsehood
    if value is None:
        if rule.falsehood is not None and not rule.skip_when_omitted:
            return rule.falsehood
        return None

    if rule.multiplier and isinstance(value, int) and not isinstance(value, bool):
        if value == 0 and rule.zero_value is not None:
            return rule.zero_value
        return value // rule.multiplier
    return value


class PropertyMapper:
    """Applies catalog property rules to device items."""

    def __init__(self, translate_to_new_id: bool = False, device_version: Optional[str] = None):
        self.translate_to_new_id = translate_to_new_id
        self.device_version = device_version
        self._version = version_tuple(device_version) if device_version else None

    def rule_applies(self, rule: PropertyRule) -> bool:
        """Version gate: rules newer than the device are left alone."""
        if not rule.min_version or self._version is None:
            return True
        return self._version >= version_tuple(rule.min_version)

    def field_name(self, rule: PropertyRule) -> str:
        """Key the rule's value is stored under in this mode."""
        if self.translate_to_new_id and rule.new_id:
            return rule.new_id
        return rule.id

    def _truth_value(self, value: Any, rule: PropertyRule) -> Any:
        flag = map_truth(value, rule)
        if self.translate_to_new_id:
            return flag
        # canonical device sentinel so parser output compares equal
        return map_to_device(flag, rule)

    def map_value(self, value: Any, rule: PropertyRule) -> Any:
        """Map one device value for the current mode."""
        if self.translate_to_new_id:
            return map_to_declaration(value, rule)
        if rule.truth is not None:
            return self._truth_value(value, rule)
        if not rule.retain_common:
            value = strip_common(value)
        if rule.string_to_int and value is not None:
            value = parse_int(value)
        return value

    def map_properties(
        self,
        item: dict,
        rules: Sequence[PropertyRule],
        single_value: bool = False,
    ) -> Any:
        """Map one device item through a rule list.

        Rules gated to a newer device version are skipped: their property is
        neither added nor removed.

        Args:
            item: Device item with bookkeeping keys already removed
            rules: Property rules of the catalog entry (or reference)
            single_value: Return only the first rule's value

        Returns:
            Mapped item (a new dict), or the bare value for single-value entries
        """
        if single_value:
            return item.get(rules[0].id) if rules else None

        mapped = dict(item)
        for rule in rules:
            if not self.rule_applies(rule):
                continue

            if rule.id in mapped:
                value = mapped[rule.id]
                if rule.transform and isinstance(value, (dict, list)):
                    if rule.up_level:
                        self._flatten_up(mapped, rule, value)
                        continue
                    value = self._transform(value, rule)
                else:
                    value = self.map_value(value, rule)
            elif rule.truth is not None and not rule.skip_when_omitted:
                value = self.map_value(None, rule)
            elif rule.has_default:
                value = copy.deepcopy(rule.default_when_omitted)
                if rule.string_to_int:
                    value = parse_int(value)
            else:
                continue

            if self.translate_to_new_id and rule.new_id:
                mapped.pop(rule.id, None)
                PropertyPath.from_dotted(rule.new_id).set(mapped, value)
            else:
                mapped[rule.id] = value

        return mapped

    def _transform(self, value: Any, rule: PropertyRule) -> Any:
        if isinstance(value, list):
            return [self._transform(element, rule) for element in value]
        if isinstance(value, dict):
            return self._transform_one(value, rule)
        return value

    def _transform_one(self, source: dict, rule: PropertyRule) -> dict:
        """Rebuild a sub-object from the rule's transform list."""
        result: dict = {}
        for trans in rule.transform:
            value = source.get(trans.id)

            if trans.capture:
                text = source.get(trans.capture_property or trans.id)
                match = re.search(trans.capture, text) if isinstance(text, str) else None
                if match is None:
                    continue
                value = match.groups()[-1] if match.groups() else match.group(0)

            if trans.remove_keys and isinstance(value, dict):
                value = {k: v for k, v in value.items() if k not in trans.remove_keys}

            if trans.truth is not None:
                value = self._truth_value(source.get(trans.id), trans)

            if value is None:
                continue
            PropertyPath.from_dotted(self.field_name(trans)).set(result, value)
        return result

    def _flatten_up(self, mapped: dict, rule: PropertyRule, value: Any) -> None:
        """Move the transformed fields of a nested property into its parent."""
        source = value[0] if isinstance(value, list) and value else value
        del mapped[rule.id]
        if isinstance(source, dict):
            mapped.update(self._transform_one(source, rule))

