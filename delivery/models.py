"""Pydantic models for authored exam content consumed by the delivery engine."""
import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class SectionType(str, enum.Enum):
    """Exam component a section belongs to."""

    LISTENING = "listening"
    READING = "reading"
    WRITING = "writing"
    SPEAKING = "speaking"


class Section(BaseModel):
    """Section metadata and optional instruction page."""

    id: str = Field(..., min_length=1)
    title: str = ""
    section_type: SectionType = SectionType.READING
    time_limit_minutes: int | None = Field(default=None, ge=0)
    instruction_title: str | None = None
    instruction_html: str | None = None

    @property
    def has_instruction(self) -> bool:
        return bool(self.instruction_title or self.instruction_html)


class PackageInstruction(BaseModel):
    """Instruction page shown once before the first section."""

    title: str | None = None
    html: str | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.title or self.html)


class ContentBlock(BaseModel):
    """Passage or audio asset shared by one or more question groups."""

    id: str = Field(..., min_length=1)
    content_type: Literal["passage", "audio"] = "passage"
    passage_title: str | None = None
    passage_content: str | None = None
    passage_footnotes: str | None = None
    audio_url: str | None = None
    audio_transcript: str | None = None


class QuestionGroup(BaseModel):
    """A titled set of questions sharing instructions and a content block."""

    id: str = Field(..., min_length=1)
    title: str | None = None
    instructions: str | None = None
    sub_instructions: str | None = None
    content_block_id: str | None = None
    question_ids: list[str] = Field(default_factory=list)


class SectionStructure(BaseModel):
    """Content blocks and ordered question groups of one section."""

    content_blocks: list[ContentBlock] = Field(default_factory=list)
    question_groups: list[QuestionGroup] = Field(default_factory=list)

    def question_ids(self) -> list[str]:
        """Distinct question ids in group order."""
        ordered = dict.fromkeys(
            question_id
            for group in self.question_groups
            for question_id in group.question_ids
        )
        return list(ordered)

    def block(self, block_id: str | None) -> ContentBlock | None:
        if not block_id:
            return None
        for block in self.content_blocks:
            if block.id == block_id:
                return block
        return None


# Question payloads


class Option(BaseModel):
    """Lettered option of a choice or matching question."""

    label: str
    text: str = ""


class Statement(BaseModel):
    """Numbered statement row (TFNG, matching, map labeling)."""

    number: int | None = None
    statement: str = ""


class FlowchartNode(BaseModel):
    id: str
    type: str = "step"
    content: str = ""
    row: int = 0
    col: int = 0
    label: str | None = None


class SpeakingPrompt(BaseModel):
    text: str = ""
    time_limit_seconds: int | None = None
    allow_response_reset: bool = True


class QuestionBase(BaseModel):
    """Fields shared by every question format."""

    id: str = Field(..., min_length=1)
    item_count: int = Field(default=1, ge=1)
    title: str | None = None
    content: str = ""
    instructions: str | None = None
    audio_url: str | None = None
    image_url: str | None = None


class McqSingleQuestion(QuestionBase):
    format: Literal["mcq_single"] = "mcq_single"
    question: str = ""
    options: list[Option] = Field(default_factory=list)
    display_mode: Literal["text", "alphabet"] = "text"


class McqMultipleQuestion(QuestionBase):
    """
    Multiple-answer choice question.

    With item_count == 1 all selected labels share one number; with
    item_count > 1 every selection gets its own number.
    """

    format: Literal["mcq_multiple"] = "mcq_multiple"
    question: str = ""
    options: list[Option] = Field(default_factory=list)
    display_mode: Literal["text", "alphabet"] = "text"
    max_selections: int | None = Field(default=None, ge=1)

    @property
    def separate_numbers(self) -> bool:
        return self.item_count > 1

    @property
    def selection_limit(self) -> int:
        if self.separate_numbers:
            return self.item_count
        return self.max_selections or len(self.options)


class JudgementQuestion(QuestionBase):
    """True/False/Not Given and Yes/No/Not Given statements."""

    format: Literal["true_false_ng", "yes_no_ng"] = "true_false_ng"
    statements: list[Statement] = Field(default_factory=list)

    @property
    def choices(self) -> tuple[str, ...]:
        if self.format == "yes_no_ng":
            return ("yes", "no", "not_given")
        return ("true", "false", "not_given")


class FillBlankTypingQuestion(QuestionBase):
    format: Literal["fill_blank_typing"] = "fill_blank_typing"


class FillBlankDragQuestion(QuestionBase):
    format: Literal["fill_blank_drag"] = "fill_blank_drag"
    word_bank: list[str] = Field(default_factory=list)


class TableCompletionQuestion(QuestionBase):
    format: Literal["table_completion"] = "table_completion"
    input_mode: Literal["typing", "drag"] = "typing"
    word_bank: list[str] = Field(default_factory=list)


class MatchingQuestion(QuestionBase):
    format: Literal["matching", "heading_matching"] = "matching"
    options: list[Option] = Field(default_factory=list)
    items: list[Statement] = Field(default_factory=list)
    allow_duplicate: bool = False


class FlowchartQuestion(QuestionBase):
    format: Literal["flowchart"] = "flowchart"
    nodes: list[FlowchartNode] = Field(default_factory=list)


class MapLabelingQuestion(QuestionBase):
    format: Literal["map_labeling"] = "map_labeling"
    labels: list[str] = Field(..., min_length=4, max_length=10)
    items: list[Statement] = Field(default_factory=list)


class ShortAnswerQuestion(QuestionBase):
    format: Literal["short_answer"] = "short_answer"


class EssayQuestion(QuestionBase):
    format: Literal["essay", "essay_task1", "essay_task2"] = "essay"
    min_words: int | None = Field(default=None, ge=0)
    condition: str | None = None


class SpeakingQuestion(QuestionBase):
    format: Literal["speaking_part1", "speaking_part2", "speaking_part3"] = "speaking_part1"
    prompts: list[SpeakingPrompt] = Field(default_factory=list)
    prep_time_seconds: int | None = None
    speaking_time_seconds: int | None = None
    speaking_category: str | None = None
    depth_level: int | None = None
    related_part2_id: str | None = None


Question = Annotated[
    Union[
        McqSingleQuestion,
        McqMultipleQuestion,
        JudgementQuestion,
        FillBlankTypingQuestion,
        FillBlankDragQuestion,
        TableCompletionQuestion,
        MatchingQuestion,
        FlowchartQuestion,
        MapLabelingQuestion,
        ShortAnswerQuestion,
        EssayQuestion,
        SpeakingQuestion,
    ],
    Field(discriminator="format"),
]

QUESTION_ADAPTER: TypeAdapter[Question] = TypeAdapter(Question)


def parse_question(data: dict[str, object]) -> Question:
    """Validate a normalized question payload into its format variant."""
    return QUESTION_ADAPTER.validate_python(data)
