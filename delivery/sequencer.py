"""Section sequencer: the delivery state machine for one exam session."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Sequence

from delivery.exceptions import InvalidEvent, InvalidTransition, LoadFailure, QuestionUnavailable
from delivery.formats import (
    AnswerEvent,
    EventKind,
    apply_event,
    captures_answers,
    collapsed_label,
    render_item,
)
from delivery.loader import ContentLoader
from delivery.models import PackageInstruction, Question
from delivery.numbering import NumberedGroup, QuestionItem, allocate_numbers, format_range
from delivery.state import LoadedSection, Phase, SessionState
from delivery.timer import TimerTask

logger = logging.getLogger(__name__)

Listener = Callable[["SectionSequencer"], None]

MATCHING_FORMATS = ("matching", "heading_matching")


class SectionSequencer:
    """
    Drives a session through instruction pages, timed sections and
    forward-only transitions.

    All state lives in `self.state` and changes only through the public
    operations below. Listeners are called after every change.

    Args:
        loader: Source of sections, structures and questions
        section_ids: Section ids in delivery order
        package_instruction: Optional page shown before the first section
        reserve_missing_slots: Keep a number for unresolved question ids
        autotick: Run the countdown on the event loop; when off the host
            calls `tick()` itself
    """

    def __init__(
        self,
        loader: ContentLoader,
        section_ids: Sequence[str],
        package_instruction: PackageInstruction | None = None,
        reserve_missing_slots: bool = False,
        autotick: bool = True,
    ) -> None:
        if not section_ids:
            raise ValueError("At least one section is required")
        self.loader = loader
        self.reserve_missing_slots = reserve_missing_slots
        self.autotick = autotick
        self.state = SessionState(
            section_ids=list(section_ids),
            package_instruction=package_instruction,
        )
        self._listeners: list[Listener] = []
        self._ticker = TimerTask(self._on_tick)

    # Lifecycle

    async def open(self) -> None:
        instruction = self.state.package_instruction
        if instruction is not None and instruction.has_content:
            self.state.transition(Phase.PACKAGE_INSTRUCTION)
            self._changed()
            return
        await self._load_section(0)

    async def start(self) -> None:
        """Leave the package or section instruction page."""
        phase = self.state.phase
        if phase == Phase.PACKAGE_INSTRUCTION:
            await self._load_section(0)
        elif phase == Phase.SECTION_INSTRUCTION:
            self._activate()
        else:
            raise InvalidTransition(f"Nothing to start in phase {self._phase_name()}")

    def close(self) -> None:
        if self.state.phase == Phase.CLOSED:
            return
        self._ticker.stop()
        self.state.transition(Phase.CLOSED)
        self.state.cache.clear()
        self.state.reset_section_scope()
        self.state.notifications.clear()
        self._changed()
        self._listeners.clear()
        logger.info("Delivery session closed")

    # Navigation inside the active section

    def go_to(self, number: int) -> QuestionItem:
        self._require(Phase.ACTIVE_SECTION)
        item = self._plan_item(number)
        if item is None:
            raise InvalidEvent(f"No item numbered {number} in this section")
        self.state.active_number = number
        self.state.active_match_slot = None
        self._changed()
        return item

    def next_item(self) -> None:
        """Advance one number; on the last item open the confirmation instead."""
        self._require(Phase.ACTIVE_SECTION)
        current = self.state.active_number or 0
        following = [n for n in self._numbers() if n > current]
        if not following:
            self._open_confirmation()
            return
        self.state.active_number = following[0]
        self.state.active_match_slot = None
        self._changed()

    def previous_item(self) -> None:
        self._require(Phase.ACTIVE_SECTION)
        current = self.state.active_number or 0
        preceding = [n for n in self._numbers() if n < current]
        if preceding:
            self.state.active_number = preceding[-1]
            self.state.active_match_slot = None
        self._changed()

    # Section transitions

    def request_transition(self) -> None:
        self._require(Phase.ACTIVE_SECTION)
        self._open_confirmation()

    def cancel_transition(self) -> None:
        self._require(Phase.CONFIRM_TRANSITION)
        self.state.transition(Phase.ACTIVE_SECTION)
        self._sync_timer()
        self._changed()

    async def confirm_transition(self) -> None:
        self._require(Phase.CONFIRM_TRANSITION)
        if self.state.is_last_section:
            self._ticker.stop()
            self.state.transition(Phase.COMPLETED)
            logger.info(
                f"Session completed after {len(self.state.section_ids)} sections"
            )
            self._changed()
            return
        await self._load_section(self.state.section_index + 1)

    # Answers

    def answer(self, event: AnswerEvent) -> dict[int, str]:
        """Apply an answer event to the item it targets and return the answer map."""
        self._require(Phase.ACTIVE_SECTION)
        item = self._event_item(event)
        state = self.state

        if (
            item.question.format in MATCHING_FORMATS
            and event.kind == EventKind.SELECT
            and event.slot is None
            and state.active_match_slot is not None
            and item.contains(state.active_match_slot)
        ):
            event = event.model_copy(update={"slot": state.active_match_slot})

        state.answers = apply_event(item, state.answers, event)
        if item.question.format in MATCHING_FORMATS and event.kind == EventKind.SELECT:
            state.active_match_slot = None
        self._changed()
        return state.answers

    def select_match_slot(self, number: int | None) -> None:
        """Mark an empty matching slot as the target of the next pool click."""
        self._require(Phase.ACTIVE_SECTION)
        state = self.state
        if number is None or number == state.active_match_slot:
            state.active_match_slot = None
            self._changed()
            return

        item = self._plan_item(number)
        if item is None or item.question.format not in MATCHING_FORMATS:
            raise InvalidEvent(f"Item {number} is not a matching slot")
        if state.answers.get(number):
            raise InvalidEvent(f"Slot {number} is already answered; clear it first")
        state.active_match_slot = number
        state.active_number = number
        self._changed()

    # Timer

    def tick(self, seconds: int = 1) -> int:
        """Advance the countdown of the active section. Other phases ignore ticks."""
        countdown = self.state.countdown
        if self.state.phase != Phase.ACTIVE_SECTION or not countdown.enabled:
            return countdown.remaining_seconds
        remaining = countdown.tick(seconds)
        if countdown.expired and not self.state.expiry_reported:
            self.state.expiry_reported = True
            self.state.notify("warning", "Time is up for this section")
            logger.warning(f"Countdown expired in section {self.state.section_id}")
        self._changed()
        return remaining

    def _on_tick(self) -> bool:
        self.tick()
        return self._timer_should_run()

    def _timer_should_run(self) -> bool:
        countdown = self.state.countdown
        return (
            self.autotick
            and self.state.phase == Phase.ACTIVE_SECTION
            and self.state.current is not None
            and countdown.enabled
            and countdown.remaining_seconds > 0
        )

    def _sync_timer(self) -> None:
        if self._timer_should_run():
            self._ticker.start()
        else:
            self._ticker.stop()

    # Listeners

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # Queries

    @property
    def phase(self) -> Phase | None:
        return self.state.phase

    @property
    def items(self) -> list[QuestionItem]:
        loaded = self.state.current
        return loaded.plan.items if loaded else []

    def unanswered_count(self) -> int:
        answers = self.state.answers
        return sum(
            1
            for item in self.items
            if captures_answers(item)
            for number in item.numbers
            if number not in answers
        )

    def view(self) -> dict[str, object]:
        """Serializable snapshot of the session for the host UI."""
        state = self.state
        view: dict[str, object] = {
            "phase": self._phase_name(),
            "sectionIndex": state.section_index,
            "sectionCount": len(state.section_ids),
            "isLastSection": state.is_last_section,
            "completed": state.completed,
            "timer": state.countdown.to_dict(),
            "error": state.load_error,
        }

        if state.phase == Phase.PACKAGE_INSTRUCTION and state.package_instruction:
            view["packageInstruction"] = state.package_instruction.model_dump()

        loaded = state.current if state.phase != Phase.CLOSED else None
        if loaded is not None:
            section = loaded.section
            plan = loaded.plan
            view["section"] = {
                "id": section.id,
                "title": section.title,
                "sectionType": section.section_type.value,
                "timeLimitMinutes": section.time_limit_minutes,
                "instructionTitle": section.instruction_title,
                "instructionHtml": section.instruction_html,
            }
            view["totalItems"] = plan.total_items
            view["activeNumber"] = state.active_number
            view["activeMatchSlot"] = state.active_match_slot
            view["answers"] = {str(n): value for n, value in sorted(state.answers.items())}
            view["unansweredCount"] = self.unanswered_count()
            view["groups"] = [self._group_outline(group) for group in plan.groups]
            view["navigator"] = [
                {
                    "number": number,
                    "answered": number in state.answers,
                    "active": number == state.active_number,
                }
                for number in self._numbers()
            ]
            if state.phase in (Phase.ACTIVE_SECTION, Phase.CONFIRM_TRANSITION):
                view["activeGroup"] = self._active_group(loaded)

        if state.phase == Phase.CONFIRM_TRANSITION:
            view["confirm"] = {
                "unansweredCount": self.unanswered_count(),
                "nextSectionIndex": None if state.is_last_section else state.section_index + 1,
            }

        view["notifications"] = state.drain_notifications()
        return view

    # Internals

    async def _load_section(self, index: int) -> None:
        state = self.state
        state.transition(Phase.SECTION_LOAD)
        self._ticker.stop()
        state.section_index = index
        state.reset_section_scope()
        state.countdown.reset(None)
        section_id = state.section_id

        loaded = state.cache.get(section_id)
        if loaded is None:
            try:
                loaded = await self._fetch_section(section_id)
            except LoadFailure as exc:
                state.load_error = str(exc)
                state.transition(Phase.LOAD_FAILED)
                state.notify("error", f"Could not load section {index + 1}")
                logger.error(f"{exc}")
                self._changed()
                return
            state.cache[section_id] = loaded
        else:
            logger.debug(f"Section {section_id} served from session cache")

        if loaded.section.has_instruction:
            state.transition(Phase.SECTION_INSTRUCTION)
            self._changed()
            return
        self._activate()

    async def _fetch_section(self, section_id: str) -> LoadedSection:
        section, structure = await asyncio.gather(
            self.loader.get_section(section_id),
            self.loader.get_section_structure(section_id),
            return_exceptions=True,
        )
        for result in (section, structure):
            if isinstance(result, LoadFailure):
                raise result
            if isinstance(result, Exception):
                raise LoadFailure(section_id, f"{type(result).__name__}: {result}") from result
            if isinstance(result, BaseException):
                raise result

        question_ids = structure.question_ids()
        results = await asyncio.gather(
            *(self.loader.get_question(question_id) for question_id in question_ids),
            return_exceptions=True,
        )

        questions: dict[str, Question] = {}
        dropped: list[str] = []
        for question_id, result in zip(question_ids, results):
            if isinstance(result, Exception):
                # Malformed payloads are dropped like unresolved ones.
                reason = result if isinstance(result, QuestionUnavailable) else repr(result)
                dropped.append(question_id)
                logger.warning(f"Dropping question {question_id}: {reason}")
                continue
            if isinstance(result, BaseException):
                raise result
            questions[question_id] = result

        plan = allocate_numbers(
            structure.question_groups,
            questions,
            reserve_missing_slots=self.reserve_missing_slots,
        )
        logger.info(
            f"Loaded section {section_id}: {len(plan.items)} questions, "
            f"{plan.total_items} items"
        )
        return LoadedSection(
            section=section,
            structure=structure,
            plan=plan,
            dropped_question_ids=tuple(dropped),
        )

    def _activate(self) -> None:
        state = self.state
        state.transition(Phase.ACTIVE_SECTION)
        state.countdown.reset(state.current.section.time_limit_minutes)
        state.expiry_reported = False
        numbers = self._numbers()
        state.active_number = numbers[0] if numbers else None
        state.active_match_slot = None
        self._sync_timer()
        self._changed()

    def _open_confirmation(self) -> None:
        self.state.transition(Phase.CONFIRM_TRANSITION)
        self.state.active_match_slot = None
        self._sync_timer()
        self._changed()

    def _require(self, phase: Phase) -> None:
        if self.state.phase != phase:
            raise InvalidTransition(
                f"Operation requires {phase.value}, session is {self._phase_name()}"
            )

    def _phase_name(self) -> str:
        return self.state.phase.value if self.state.phase else "unopened"

    def _plan_item(self, number: int) -> QuestionItem | None:
        loaded = self.state.current
        return loaded.plan.item_for_number(number) if loaded else None

    def _numbers(self) -> list[int]:
        return [number for item in self.items for number in item.numbers]

    def _event_item(self, event: AnswerEvent) -> QuestionItem:
        anchor = event.number
        if anchor is None:
            anchor = event.slot
        if anchor is None:
            anchor = self.state.active_number
        if anchor is None:
            raise InvalidEvent("No item is active")
        item = self._plan_item(anchor)
        if item is None:
            raise InvalidEvent(f"No item numbered {anchor} in this section")
        return item

    def _group_outline(self, numbered: NumberedGroup) -> dict[str, object]:
        group = numbered.group
        return {
            "id": group.id,
            "title": numbered.title,
            "instructions": group.instructions,
            "subInstructions": group.sub_instructions,
            "startNum": numbered.start_num,
            "endNum": numbered.end_num,
            "contentBlockId": group.content_block_id,
            "items": [
                {
                    "questionId": item.question.id,
                    "format": item.question.format,
                    "startNum": item.start_num,
                    "endNum": item.end_num,
                    "numberLabel": format_range(item.start_num, item.end_num),
                    "label": collapsed_label(item),
                }
                for item in numbered.items
            ],
        }

    def _active_group(self, loaded: LoadedSection) -> dict[str, object] | None:
        number = self.state.active_number
        if number is None:
            return None
        numbered = loaded.plan.group_for_number(number)
        if numbered is None:
            return None
        outline = self._group_outline(numbered)
        block = loaded.structure.block(numbered.group.content_block_id)
        outline["contentBlock"] = block.model_dump() if block else None
        outline["items"] = [
            render_item(item, self.state.answers, self.state.active_match_slot)
            for item in numbered.items
        ]
        return outline
