"""State machines for the provisioning and teardown pipelines.

Deterministic stage machines that define the order in which pipeline
phases run. A pipeline may only move to the next phase in sequence or
fail into ERROR; both COMPLETE and ERROR are terminal.
"""

from enum import Enum

import structlog

from storeseed.domain.exceptions import InvalidStateTransitionError

logger = structlog.get_logger()


# ============================================================================
# Provisioning State Machine
# ============================================================================


class ProvisioningStage(str, Enum):
    """Provisioning pipeline stages.

    State diagram:
        PENDING ─► RECONCILE ─► ATTRIBUTES ─► CATEGORIES ─► SIMPLE_ITEMS
                                                                 │
        COMPLETE ◄─ BUNDLE_ITEMS ◄─ VARIANTS ◄─ COMPOSITE_SHELLS ◄┘

        Any non-terminal stage ──fail──► ERROR
    """

    PENDING = "pending"
    RECONCILE = "reconcile"
    ATTRIBUTES = "attributes"
    CATEGORIES = "categories"
    SIMPLE_ITEMS = "simple_items"
    COMPOSITE_SHELLS = "composite_shells"
    VARIANTS = "variants"
    BUNDLE_ITEMS = "bundle_items"
    COMPLETE = "complete"
    ERROR = "error"

    def can_transition_to(self, target: "ProvisioningStage") -> bool:
        """Check if transition to target stage is valid.

        Args:
            target: Target stage to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _PROVISIONING_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["ProvisioningStage"]:
        """Get list of valid target stages.

        Returns:
            List of stages that can be transitioned to.
        """
        return list(_PROVISIONING_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) stage.

        Returns:
            True if no further transitions are possible.
        """
        return len(_PROVISIONING_TRANSITIONS.get(self, set())) == 0


_PROVISIONING_ORDER: list[ProvisioningStage] = [
    ProvisioningStage.PENDING,
    ProvisioningStage.RECONCILE,
    ProvisioningStage.ATTRIBUTES,
    ProvisioningStage.CATEGORIES,
    ProvisioningStage.SIMPLE_ITEMS,
    ProvisioningStage.COMPOSITE_SHELLS,
    ProvisioningStage.VARIANTS,
    ProvisioningStage.BUNDLE_ITEMS,
    ProvisioningStage.COMPLETE,
]

# Each stage moves to the next one or fails
_PROVISIONING_TRANSITIONS: dict[ProvisioningStage, set[ProvisioningStage]] = {
    stage: {following, ProvisioningStage.ERROR}
    for stage, following in zip(_PROVISIONING_ORDER, _PROVISIONING_ORDER[1:])
}
_PROVISIONING_TRANSITIONS[ProvisioningStage.COMPLETE] = set()  # Terminal state
_PROVISIONING_TRANSITIONS[ProvisioningStage.ERROR] = set()  # Terminal state


# ============================================================================
# Teardown State Machine
# ============================================================================


class TeardownStage(str, Enum):
    """Teardown pipeline stages.

    State diagram:
        PENDING ─► FINDING ─► DELETING_VARIANTS ─► DELETING_ITEMS
                                                        │
        COMPLETE ◄─ DELETING_BRANDS ◄─ DELETING_CATEGORIES ◄┘

        Any non-terminal stage ──fail──► ERROR
    """

    PENDING = "pending"
    FINDING = "finding"
    DELETING_VARIANTS = "deleting_variants"
    DELETING_ITEMS = "deleting_items"
    DELETING_CATEGORIES = "deleting_categories"
    DELETING_BRANDS = "deleting_brands"
    COMPLETE = "complete"
    ERROR = "error"

    def can_transition_to(self, target: "TeardownStage") -> bool:
        """Check if transition to target stage is valid.

        Args:
            target: Target stage to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _TEARDOWN_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["TeardownStage"]:
        """Get list of valid target stages.

        Returns:
            List of stages that can be transitioned to.
        """
        return list(_TEARDOWN_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) stage.

        Returns:
            True if no further transitions are possible.
        """
        return len(_TEARDOWN_TRANSITIONS.get(self, set())) == 0


_TEARDOWN_ORDER: list[TeardownStage] = [
    TeardownStage.PENDING,
    TeardownStage.FINDING,
    TeardownStage.DELETING_VARIANTS,
    TeardownStage.DELETING_ITEMS,
    TeardownStage.DELETING_CATEGORIES,
    TeardownStage.DELETING_BRANDS,
    TeardownStage.COMPLETE,
]

_TEARDOWN_TRANSITIONS: dict[TeardownStage, set[TeardownStage]] = {
    stage: {following, TeardownStage.ERROR}
    for stage, following in zip(_TEARDOWN_ORDER, _TEARDOWN_ORDER[1:])
}
_TEARDOWN_TRANSITIONS[TeardownStage.COMPLETE] = set()  # Terminal state
_TEARDOWN_TRANSITIONS[TeardownStage.ERROR] = set()  # Terminal state


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_provisioning_transition(
    current_stage: ProvisioningStage,
    target_stage: ProvisioningStage,
) -> None:
    """Validate and raise if a provisioning stage transition is invalid.

    Args:
        current_stage: Current stage.
        target_stage: Target stage.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_stage.can_transition_to(target_stage):
        raise InvalidStateTransitionError(
            pipeline="provisioning",
            current_state=current_stage.value,
            target_state=target_stage.value,
            allowed_transitions=[s.value for s in current_stage.allowed_transitions()],
        )


def validate_teardown_transition(
    current_stage: TeardownStage,
    target_stage: TeardownStage,
) -> None:
    """Validate and raise if a teardown stage transition is invalid.

    Args:
        current_stage: Current stage.
        target_stage: Target stage.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_stage.can_transition_to(target_stage):
        raise InvalidStateTransitionError(
            pipeline="teardown",
            current_state=current_stage.value,
            target_state=target_stage.value,
            allowed_transitions=[s.value for s in current_stage.allowed_transitions()],
        )


class StageTracker:
    """Tracks the current stage of one pipeline run.

    Every move goes through the matching validate function, so a
    pipeline cannot skip a phase or leave a terminal stage.
    """

    _VALIDATORS = {
        ProvisioningStage: validate_provisioning_transition,
        TeardownStage: validate_teardown_transition,
    }

    def __init__(self, initial: ProvisioningStage | TeardownStage) -> None:
        self._stage = initial
        self._validate = self._VALIDATORS[type(initial)]

    @property
    def stage(self) -> ProvisioningStage | TeardownStage:
        """Current stage."""
        return self._stage

    def advance(self, target: ProvisioningStage | TeardownStage) -> None:
        """Move to the next stage.

        Args:
            target: Stage to enter.

        Raises:
            InvalidStateTransitionError: If the move is not allowed.
        """
        self._validate(self._stage, target)
        logger.debug("Stage transition", from_stage=self._stage.value, to_stage=target.value)
        self._stage = target

    def fail(self) -> ProvisioningStage | TeardownStage:
        """Move to ERROR and return the stage in which the failure happened.

        Returns:
            The stage that was active when the run failed.
        """
        failed_in = self._stage
        error_stage = type(self._stage).ERROR
        if self._stage.can_transition_to(error_stage):
            self._stage = error_stage
        return failed_in
