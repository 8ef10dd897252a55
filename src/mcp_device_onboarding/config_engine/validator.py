"""Pre-flight validation for declarations.

Catches structural errors before any device communication. Validators return
a ValidationResult and never raise, so several can run in sequence.
"""
from typing import Any, Iterable, Protocol

from ..config.catalog import Catalog
from .paths import dereference_pointer
from .schema import ValidationResult

RESERVED_KEYS = ("class", "schemaVersion")


class Validator(Protocol):
    def validate(self, declaration: Any) -> ValidationResult:
        ...


class DeclarationValidator:
    """Validate declaration shape against the mapping catalog."""

    def __init__(self, catalog: Catalog):
        """
        Initialize validator.

        Args:
            catalog: Catalog naming the known schema classes
        """
        self.catalog = catalog
        self.known_classes = catalog.classes
        self.nameless_classes = catalog.nameless_classes

    def validate(self, declaration: Any) -> ValidationResult:
        """
        Validate a declaration.

        Performs pre-flight checks:
        - Top-level class is Device
        - At least one tenant
        - Every object carries a string class known to the catalog
        - Nameless classes appear at most once per tenant
        - Pointers resolve

        Args:
            declaration: Declaration body

        Returns:
            ValidationResult with valid flag, errors, and warnings
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not isinstance(declaration, dict):
            return ValidationResult(valid=False, errors=["Declaration must be an object"])

        if declaration.get("class") != "Device":
            errors.append(f"Declaration class must be 'Device', got {declaration.get('class')!r}")

        tenants = [
            key for key, value in declaration.items()
            if key not in RESERVED_KEYS and isinstance(value, dict) and value.get("class") == "Tenant"
        ]
        if not tenants:
            errors.append("Declaration contains no tenants")

        for tenant in tenants:
            seen_nameless: dict[str, str] = {}
            self._validate_container(declaration, tenant, declaration[tenant], seen_nameless, errors, warnings)

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def _validate_container(
        self,
        declaration: dict,
        location: str,
        container: dict,
        seen_nameless: dict[str, str],
        errors: list[str],
        warnings: list[str],
    ) -> None:
        for key, value in container.items():
            if key == "class" or not isinstance(value, dict):
                continue
            where = f"{location}/{key}"

            if "class" not in value:
                # grouping wrapper
                self._validate_container(declaration, where, value, seen_nameless, errors, warnings)
                continue

            schema_class = value["class"]
            if not isinstance(schema_class, str):
                errors.append(f"{where}: class must be a string")
                continue
            if schema_class not in self.known_classes:
                warnings.append(f"{where}: unknown class {schema_class}")

            if schema_class in self.nameless_classes:
                if schema_class in seen_nameless:
                    errors.append(
                        f"{where}: {schema_class} is already declared at {seen_nameless[schema_class]}"
                    )
                else:
                    seen_nameless[schema_class] = where

            self._check_pointers(declaration, where, value, warnings)

    def _check_pointers(self, declaration: dict, where: str, value: Any, warnings: list[str]) -> None:
        if isinstance(value, dict):
            for key, item in value.items():
                self._check_pointers(declaration, f"{where}/{key}", item, warnings)
        elif isinstance(value, list):
            for item in value:
                self._check_pointers(declaration, where, item, warnings)
        elif isinstance(value, str) and value.startswith("/") and len(value) > 1:
            if dereference_pointer(declaration, value) is None:
                warnings.append(f"{where}: pointer {value} does not resolve")


def run_validators(validators: Iterable[Validator], declaration: Any) -> ValidationResult:
    """
    Run validators in sequence.

    Stops at the first failing validator and returns its result; otherwise
    returns a passing result carrying every validator's warnings.
    """
    warnings: list[str] = []
    for validator in validators:
        result = validator.validate(declaration)
        if not result.valid:
            return result
        warnings.extend(result.warnings)
    return ValidationResult(valid=True, warnings=warnings)
