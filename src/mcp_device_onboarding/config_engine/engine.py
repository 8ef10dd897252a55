"""Main Config Engine - orchestrates planning and inspection.

Provides a single entry point for:
1. Validating a declaration
2. Parsing it into the normalized representation
3. Reading the device's current config (and maintaining its baseline)
4. Calculating the diff between the two
5. Rebuilding a declaration from live device state
"""
import logging
import uuid
from typing import Any, Iterable, Optional, Sequence

from ..config.catalog import Catalog, load_catalog
from ..config_store.store import BaselineStore, MemoryBaselineStore
from ..devices.base import ManagedDevice
from .diff import DEFAULT_CLASSES_OF_TRUTH, DiffEngine, summarize_diff
from .inspection import InspectionMapper
from .parser import DeclarationParser
from .reader import ConfigManager
from .schema import DeviceState, DiffResult, InspectResult, ParseResult, PlanResult, ValidationResult
from .trace import DiffTracer
from .validator import DeclarationValidator, Validator, run_validators

logger = logging.getLogger(__name__)

UNVERIFIED_DECLARATION = "Unable to verify declaration from existing state."


def new_task_id() -> str:
    return uuid.uuid4().hex[:8]


class ConfigEngine:
    """
    Main Config Engine for onboarding declarations.

    Usage:
        engine = ConfigEngine(baseline_store=FileBaselineStore())
        async with device:
            result = await engine.plan(declaration, device)
        print(result.summary)
    """

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        baseline_store: Optional[BaselineStore] = None,
        tracer: Optional[DiffTracer] = None,
        classes_of_truth: Sequence[str] = DEFAULT_CLASSES_OF_TRUTH,
        validators: Optional[Iterable[Validator]] = None,
    ):
        """
        Initialize the Config Engine.

        Args:
            catalog: Mapping catalog (default: the packaged catalog)
            baseline_store: Where device baselines live (default: in memory)
            tracer: Optional trace collaborator for configs and diffs
            classes_of_truth: Classes the diff is authoritative for
            validators: Declaration validators run before parsing
        """
        self.catalog = catalog or load_catalog()
        self.baseline_store = baseline_store or MemoryBaselineStore()
        self.tracer = tracer
        self.diff_engine = DiffEngine(classes_of_truth, self.catalog.nameless_classes, tracer)
        self.inspector = InspectionMapper(self.catalog)
        self.validators = list(validators) if validators is not None else [DeclarationValidator(self.catalog)]

    def validate(self, declaration: Any) -> ValidationResult:
        """Run the validators; the first failing one decides."""
        return run_validators(self.validators, declaration)

    def parse(self, declaration: dict[str, Any], task_id: Optional[str] = None) -> ParseResult:
        """Parse a declaration into the normalized representation."""
        return DeclarationParser(self.catalog, task_id=task_id).parse(declaration)

    async def read_current(
        self,
        declaration: dict[str, Any],
        state: DeviceState,
        device: ManagedDevice,
        translate_to_new_id: bool = False,
    ) -> None:
        """Read the device into `state` and update its baseline."""
        manager = ConfigManager(self.catalog, device, self.baseline_store, translate_to_new_id)
        await manager.get(declaration, state)

    async def diff(
        self,
        desired: dict[str, Any],
        current: dict[str, Any],
        original: Optional[dict[str, Any]] = None,
    ) -> DiffResult:
        """Calculate the diff between a parsed declaration and a device read."""
        return await self.diff_engine.process(desired, current, original)

    async def plan(
        self,
        declaration: dict[str, Any],
        device: ManagedDevice,
        state: Optional[DeviceState] = None,
    ) -> PlanResult:
        """
        Work out what applying a declaration to a device would change.

        This is the main entry point. It:
        1. Validates the declaration
        2. Parses it
        3. Reads the device's current config
        4. Calculates the diff

        Args:
            declaration: Declaration body (class Device)
            device: Connected device
            state: Per-device state from earlier reads (a fresh one when omitted)

        Returns:
            PlanResult with success/failure and the diff
        """
        state = state or DeviceState(task_id=new_task_id())
        result = PlanResult(device_id=device.device_id)

        # Step 1: Validate
        logger.info(f"Validating declaration for {device.device_id}")
        validation = self.validate(declaration)
        if not validation.valid:
            result.error = f"Validation failed: {'; '.join(validation.errors)}"
            return result
        result.warnings = list(validation.warnings)

        # Step 2: Parse
        try:
            parsed = self.parse(declaration, state.task_id)
        except Exception as e:
            result.error = f"Parse error: {e}"
            return result
        result.tenants = parsed.tenants

        # Step 3: Read current state
        logger.info(f"Reading current config from {device.device_id}")
        try:
            await self.read_current(declaration, state, device)
        except Exception as e:
            result.error = f"Failed to get current state: {e}"
            return result

        if self.tracer is not None:
            await self.tracer.trace_config("current", state.current_config)
            await self.tracer.trace_config("desired", parsed.parsed_declaration)

        # Step 4: Diff
        try:
            diff = await self.diff(parsed.parsed_declaration, state.current_config, state.original_config)
        except Exception as e:
            result.error = f"Diff error: {e}"
            return result
        logger.info(f"Found {diff.total_changes} changes for {device.device_id}")

        result.diff = diff
        result.summary = summarize_diff(diff)
        result.success = True
        return result

    async def inspect(self, device: ManagedDevice) -> InspectResult:
        """
        Rebuild a declaration from the device's live config.

        Uses a throwaway state and baseline store so inspecting never touches
        the baseline kept for reconciliation.
        """
        state = DeviceState(task_id=new_task_id())
        manager = ConfigManager(self.catalog, device, MemoryBaselineStore(), translate_to_new_id=True)
        try:
            await manager.get({}, state)
        except Exception as e:
            return InspectResult(valid=False, errors=[f"Failed to get current state: {e}"])

        result = self.inspector.build_declaration(state.current_config)
        validation = self.validate(result.declaration)
        if not validation.valid:
            result.valid = False
            result.errors.extend(validation.errors)
        if not result.valid:
            result.errors.append(UNVERIFIED_DECLARATION)
        return result
