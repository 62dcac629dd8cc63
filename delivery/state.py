"""Session state owned by the section sequencer."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field

from delivery.exceptions import InvalidTransition
from delivery.formats import AnswerMap
from delivery.models import PackageInstruction, Section, SectionStructure
from delivery.numbering import NumberingPlan
from delivery.timer import Countdown


class Phase(str, enum.Enum):
    PACKAGE_INSTRUCTION = "package_instruction"
    SECTION_LOAD = "section_load"
    SECTION_INSTRUCTION = "section_instruction"
    ACTIVE_SECTION = "active_section"
    CONFIRM_TRANSITION = "confirm_transition"
    COMPLETED = "completed"
    LOAD_FAILED = "load_failed"
    CLOSED = "closed"


# None is the state before open().
TRANSITIONS: dict[Phase | None, set[Phase]] = {
    None: {Phase.PACKAGE_INSTRUCTION, Phase.SECTION_LOAD, Phase.CLOSED},
    Phase.PACKAGE_INSTRUCTION: {Phase.SECTION_LOAD, Phase.CLOSED},
    Phase.SECTION_LOAD: {
        Phase.SECTION_INSTRUCTION,
        Phase.ACTIVE_SECTION,
        Phase.LOAD_FAILED,
        Phase.CLOSED,
    },
    Phase.SECTION_INSTRUCTION: {Phase.ACTIVE_SECTION, Phase.CLOSED},
    Phase.ACTIVE_SECTION: {Phase.CONFIRM_TRANSITION, Phase.CLOSED},
    Phase.CONFIRM_TRANSITION: {
        Phase.ACTIVE_SECTION,
        Phase.SECTION_LOAD,
        Phase.COMPLETED,
        Phase.CLOSED,
    },
    Phase.LOAD_FAILED: {Phase.CLOSED},
    Phase.COMPLETED: {Phase.CLOSED},
    Phase.CLOSED: set(),
}


@dataclass(frozen=True)
class LoadedSection:
    """Fetched section content together with its numbering."""

    section: Section
    structure: SectionStructure
    plan: NumberingPlan
    dropped_question_ids: tuple[str, ...] = ()


@dataclass
class SessionState:
    section_ids: list[str]
    package_instruction: PackageInstruction | None = None
    phase: Phase | None = None
    section_index: int = 0
    cache: dict[str, LoadedSection] = field(default_factory=dict)
    answers: AnswerMap = field(default_factory=dict)
    active_number: int | None = None
    active_match_slot: int | None = None
    countdown: Countdown = field(default_factory=Countdown)
    expiry_reported: bool = False
    load_error: str | None = None
    notifications: list[dict[str, str]] = field(default_factory=list)

    @property
    def section_id(self) -> str:
        return self.section_ids[self.section_index]

    @property
    def is_last_section(self) -> bool:
        return self.section_index == len(self.section_ids) - 1

    @property
    def current(self) -> LoadedSection | None:
        return self.cache.get(self.section_id)

    @property
    def completed(self) -> bool:
        return self.phase == Phase.COMPLETED

    @property
    def confirm_pending(self) -> bool:
        return self.phase == Phase.CONFIRM_TRANSITION

    def can_transition(self, target: Phase) -> bool:
        return target in TRANSITIONS.get(self.phase, set())

    def transition(self, target: Phase) -> None:
        if not self.can_transition(target):
            current = self.phase.value if self.phase else "unopened"
            raise InvalidTransition(f"Cannot move from {current} to {target.value}")
        self.phase = target

    def reset_section_scope(self) -> None:
        """Forget answers and navigation of the previous section."""
        self.answers = {}
        self.active_number = None
        self.active_match_slot = None
        self.expiry_reported = False
        self.load_error = None

    def notify(self, level: str, message: str) -> None:
        self.notifications.append({"level": level, "message": message})

    def drain_notifications(self) -> list[dict[str, str]]:
        drained = self.notifications
        self.notifications = []
        return drained
