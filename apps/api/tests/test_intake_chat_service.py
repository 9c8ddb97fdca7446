"""Tests for the slot-filling backend, field merging and LLM reply parsing."""

import anyio
import pytest
from hypothesis import given, settings as hypothesis_settings, strategies as st

from process_intake.services.ai_provider import AIProvider, AIProviderError, ChatResponse
from process_intake.services.intake_chat_service import (
    DEFAULT_ACTIONABLES,
    DEFAULT_CHECKPOINTS,
    REQUIRED_SLOTS,
    SLOT_ORDER,
    SLOT_PROMPTS,
    ChatBackendError,
    ChatTurn,
    IntakeFields,
    LLMChatBackend,
    SlotFillingChatBackend,
    SlotState,
    merge_fields,
    normalize_priority,
    parse_analysis_reply,
    parse_chat_reply,
)
from process_intake.db.enums import ChatRole


def _history() -> list[ChatTurn]:
    return [
        ChatTurn.now(ChatRole.USER, "hello"),
        ChatTurn.now(ChatRole.ASSISTANT, SLOT_PROMPTS["title"]),
    ]


async def _run_turns(texts: list[str]) -> tuple[IntakeFields, bool]:
    backend = SlotFillingChatBackend()
    fields = IntakeFields()
    is_complete = False
    for text in texts:
        result = await backend.extract(_history(), text, fields)
        fields = merge_fields(fields, result.fields)
        is_complete = result.is_complete
    return fields, is_complete


# =============================================================================
# Slot filling
# =============================================================================


@pytest.mark.asyncio
async def test_first_call_returns_opening_prompt_without_consuming_text():
    backend = SlotFillingChatBackend()
    current = IntakeFields(department="Finance")

    result = await backend.extract([], "Invoice Automation", current)

    assert SLOT_PROMPTS["title"] in result.assistant_message
    assert result.is_complete is False
    assert result.fields == current


@pytest.mark.asyncio
async def test_turns_fill_slots_in_order():
    fields, is_complete = await _run_turns(["Invoice Automation", "Finance"])

    assert fields.title == "Invoice Automation"
    assert fields.department == "Finance"
    assert fields.description is None
    assert is_complete is False
    assert fields.pending_slots()[0] == "description"


@pytest.mark.asyncio
async def test_completion_renders_summary():
    backend = SlotFillingChatBackend()
    fields = IntakeFields(title="Invoice Automation", department="Finance", resolved=frozenset({"title", "department"}))

    result = await backend.extract(_history(), "  Automate AP matching  ", fields)

    assert result.is_complete is True
    assert result.fields.description == "Automate AP matching"
    assert "**Process Name**: Invoice Automation" in result.assistant_message
    assert "**Department**: Finance" in result.assistant_message
    assert "Submit" in result.assistant_message


@pytest.mark.asyncio
async def test_empty_answer_reasks_required_slot():
    backend = SlotFillingChatBackend()

    result = await backend.extract(_history(), "   ", IntakeFields())

    assert result.fields == IntakeFields()
    assert result.assistant_message.startswith("I still need this one")
    assert SLOT_PROMPTS["title"] in result.assistant_message


@pytest.mark.asyncio
async def test_over_long_answer_reasks_same_slot():
    backend = SlotFillingChatBackend()
    current = IntakeFields(title="Invoice Automation", resolved=frozenset({"title"}))

    result = await backend.extract(_history(), "F" * 101, current)

    assert result.fields == IntakeFields()
    assert result.assistant_message.startswith("That answer is too long (at most 100 characters)")
    assert SLOT_PROMPTS["department"] in result.assistant_message

    result = await backend.extract(_history(), "F" * 100, current)
    assert result.fields.department == "F" * 100


@pytest.mark.asyncio
async def test_empty_answer_skips_optional_slot_and_never_returns_to_it():
    fields, _ = await _run_turns(["Invoice Automation", "Finance", "Automate AP matching", ""])

    assert fields.location is None
    assert fields.slot_state("location") is SlotState.SKIPPED
    assert "location" not in fields.pending_slots()
    assert fields.pending_slots()[0] == "business_unit"

    fields, _ = await _run_turns(
        ["Invoice Automation", "Finance", "Automate AP matching", "", "Shared Services"]
    )
    assert fields.location is None
    assert fields.business_unit == "Shared Services"


@pytest.mark.parametrize(
    "answer,expected",
    [
        ("high", "High"),
        ("CRITICAL", "Critical"),
        (" low ", "Low"),
        ("Medium", "Medium"),
        ("asap please", "Medium"),
        ("", "Medium"),
    ],
)
def test_normalize_priority(answer, expected):
    assert normalize_priority(answer) == expected


@pytest.mark.asyncio
async def test_priority_slot_normalizes_unknown_answer():
    fields, _ = await _run_turns(
        ["Invoice Automation", "Finance", "Automate AP matching", "", "", "", "whenever"]
    )

    assert fields.queue_priority == "Medium"
    assert fields.slot_state("queue_priority") is SlotState.VALUE
    assert fields.pending_slots() == []


def test_queue_priority_default_is_not_an_answer():
    fields = IntakeFields(queue_priority="Medium")

    assert fields.slot_state("queue_priority") is SlotState.UNSET
    assert "queue_priority" in fields.pending_slots()


@pytest.mark.asyncio
async def test_synthesize_returns_non_empty_lists():
    backend = SlotFillingChatBackend()

    result = await backend.synthesize("Invoice Automation", "Automate AP matching", ["a.pdf", "b"])

    assert "Invoice Automation" in result.brief
    assert "2 supporting documents were considered" in result.brief
    assert result.checkpoints == DEFAULT_CHECKPOINTS
    assert result.actionables == DEFAULT_ACTIONABLES


# =============================================================================
# Merge
# =============================================================================


def test_merge_overwrites_only_when_present():
    existing = IntakeFields(title="Old", department="Finance", resolved=frozenset({"title", "department"}))
    proposed = IntakeFields(title="New", department="   ", description=None)

    merged = merge_fields(existing, proposed)

    assert merged.title == "New"
    assert merged.department == "Finance"
    assert merged.description is None
    assert merged.resolved == frozenset({"title", "department"})


def test_merge_resolved_only_grows():
    existing = IntakeFields(resolved=frozenset({"location"}))

    merged = merge_fields(existing, IntakeFields(resolved=frozenset({"business_unit", "bogus"})))

    assert merged.resolved == frozenset({"location", "business_unit"})
    assert merged.skipped == frozenset({"location", "business_unit"})


# =============================================================================
# Properties
# =============================================================================

turn_text = st.one_of(
    st.just(""),
    st.just("   "),
    st.sampled_from(["Low", "high", "Critical", "Invoice Automation", "Finance"]),
    st.text(max_size=30),
)


@hypothesis_settings(max_examples=75, deadline=None)
@given(st.lists(turn_text, max_size=12))
def test_fields_never_become_empty_once_set(texts):
    async def scenario() -> None:
        backend = SlotFillingChatBackend()
        fields = IntakeFields()
        for text in texts:
            before = fields
            result = await backend.extract(_history(), text, fields)
            fields = merge_fields(fields, result.fields)
            for slot in SLOT_ORDER:
                if before.has(slot):
                    assert fields.has(slot)
            assert before.resolved <= fields.resolved

    anyio.run(scenario)


@hypothesis_settings(max_examples=75, deadline=None)
@given(st.lists(turn_text, max_size=12))
def test_is_complete_iff_required_slots_filled(texts):
    async def scenario() -> None:
        backend = SlotFillingChatBackend()
        fields = IntakeFields()
        for text in texts:
            result = await backend.extract(_history(), text, fields)
            fields = merge_fields(fields, result.fields)
            assert result.is_complete == all(fields.has(s) for s in REQUIRED_SLOTS)

    anyio.run(scenario)


# =============================================================================
# LLM reply parsing
# =============================================================================


def test_parse_chat_reply_extracts_json_block():
    reply = (
        "Great, which department owns it?\n"
        "```json\n"
        '{"title": "Invoice Automation", "department": null, "queuePriority": "high", '
        '"businessUnit": "  ", "isComplete": false}\n'
        "```"
    )

    visible, fields, flagged = parse_chat_reply(reply)

    assert visible == "Great, which department owns it?"
    assert fields.title == "Invoice Automation"
    assert fields.department is None
    assert fields.business_unit is None
    assert fields.queue_priority == "High"
    assert flagged is False


def test_parse_chat_reply_drops_values_longer_than_their_slot():
    reply = (
        "Thanks!\n"
        "```json\n"
        f'{{"title": "{"T" * 300}", "department": "Finance", '
        f'"contactEmail": "{"a" * 321}", "isComplete": false}}\n'
        "```"
    )

    _, fields, _ = parse_chat_reply(reply)

    assert fields.title is None
    assert fields.contact_email is None
    assert fields.department == "Finance"


def test_parse_chat_reply_without_json_carries_no_fields():
    visible, fields, flagged = parse_chat_reply("Hello there!")

    assert visible == "Hello there!"
    assert fields == IntakeFields()
    assert flagged is False


def test_parse_analysis_reply_requires_brief():
    with pytest.raises(ChatBackendError):
        parse_analysis_reply('{"checkpoints": ["a"], "actionables": ["b"]}')
    with pytest.raises(ChatBackendError):
        parse_analysis_reply("not json at all")


def test_parse_analysis_reply_strips_items():
    result = parse_analysis_reply(
        'Here you go: {"brief": " Solid. ", "checkpoints": [" a ", ""], "actionables": ["b"]}'
    )

    assert result.brief == "Solid."
    assert result.checkpoints == ["a"]
    assert result.actionables == ["b"]


class _StubProvider(AIProvider):
    def __init__(self, content: str | None = None, error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: list = []

    async def chat(self, messages, model=None, temperature=0.3, max_tokens=2000):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return ChatResponse(
            content=self.content, prompt_tokens=0, completion_tokens=0, total_tokens=0, model="stub"
        )


@pytest.mark.asyncio
async def test_llm_backend_completion_requires_merged_required_fields():
    provider = _StubProvider(
        content='Thanks!\n{"title": "Invoice Automation", "isComplete": true}'
    )
    backend = LLMChatBackend(provider)

    result = await backend.extract(_history(), "Invoice Automation", IntakeFields())

    assert result.fields.title == "Invoice Automation"
    assert result.is_complete is False
    assert provider.calls[0][0].role == "system"


@pytest.mark.asyncio
async def test_llm_backend_wraps_provider_errors():
    backend = LLMChatBackend(_StubProvider(error=AIProviderError("boom")))

    with pytest.raises(ChatBackendError):
        await backend.synthesize("t", "d", [])
