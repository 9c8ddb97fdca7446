"""Intake chat backends.

A chat backend turns one conversation turn into an assistant reply plus a
partial set of intake fields, and synthesizes the analysis brief once the
intake has been submitted. Two implementations share the contract:

- SlotFillingChatBackend: deterministic, asks for one slot at a time.
- LLMChatBackend: delegates to a configured AI provider (OpenAI / Gemini).
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from process_intake.core.config import settings
from process_intake.db.enums import ChatRole, DEFAULT_QUEUE_PRIORITY, QueuePriority
from process_intake.services.ai_provider import (
    AIProvider,
    AIProviderError,
    ChatMessage,
    get_provider,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Slots
# =============================================================================

SLOT_ORDER: tuple[str, ...] = (
    "title",
    "department",
    "description",
    "location",
    "business_unit",
    "contact_email",
    "queue_priority",
)
REQUIRED_SLOTS: tuple[str, ...] = ("title", "department", "description")
OPTIONAL_SLOTS = frozenset({"location", "business_unit", "contact_email"})

# Longest accepted answer per slot (matches the intake_sessions column widths)
SLOT_MAX_LENGTHS: dict[str, int] = {
    "title": 200,
    "department": 100,
    "location": 200,
    "business_unit": 200,
    "contact_email": 320,
}

# JSON keys used by the LLM reply block
SLOT_JSON_KEYS = {
    "title": "title",
    "department": "department",
    "description": "description",
    "location": "location",
    "business_unit": "businessUnit",
    "contact_email": "contactEmail",
    "queue_priority": "queuePriority",
}


class SlotState(str, Enum):
    UNSET = "unset"
    SKIPPED = "skipped"
    VALUE = "value"


class ChatBackendError(Exception):
    """The chat/analysis backend failed or is not configured."""

    pass


def _is_present(value: object) -> bool:
    return isinstance(value, str) and value.strip() != ""


def fits_slot(slot: str, value: str) -> bool:
    limit = SLOT_MAX_LENGTHS.get(slot)
    return limit is None or len(value) <= limit


def normalize_priority(value: str | None) -> str:
    """Map free text to a queue priority; anything unrecognised becomes Medium."""
    text = (value or "").strip().lower()
    for priority in QueuePriority:
        if priority.value.lower() == text:
            return priority.value
    return DEFAULT_QUEUE_PRIORITY.value


@dataclass(frozen=True)
class ChatTurn:
    """One entry of the append-only intake transcript."""

    role: str
    text: str
    timestamp: datetime

    @classmethod
    def now(cls, role: ChatRole, text: str) -> ChatTurn:
        return cls(role=role.value, text=text, timestamp=datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "text": self.text, "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatTurn:
        return cls(
            role=data["role"],
            text=data["text"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True)
class IntakeFields:
    """
    The seven intake slots plus the set of slots the conversation has closed.

    Used both for the full field state of a session and for the partial
    proposals a backend returns (None / empty means "no new information").
    A slot is VALUE when it holds text, SKIPPED when resolved without text,
    otherwise UNSET. queue_priority only counts as answered once resolved,
    since the session default is not an answer.
    """

    title: str | None = None
    department: str | None = None
    description: str | None = None
    location: str | None = None
    business_unit: str | None = None
    contact_email: str | None = None
    queue_priority: str | None = None
    resolved: frozenset[str] = field(default_factory=frozenset)

    def get(self, slot: str) -> str | None:
        return getattr(self, slot)

    def has(self, slot: str) -> bool:
        return _is_present(self.get(slot))

    def slot_state(self, slot: str) -> SlotState:
        if slot in self.resolved:
            return SlotState.VALUE if self.has(slot) else SlotState.SKIPPED
        if slot != "queue_priority" and self.has(slot):
            return SlotState.VALUE
        return SlotState.UNSET

    def pending_slots(self) -> list[str]:
        return [s for s in SLOT_ORDER if self.slot_state(s) is SlotState.UNSET]

    @property
    def is_complete(self) -> bool:
        return all(self.has(s) for s in REQUIRED_SLOTS)

    def values(self) -> dict[str, str | None]:
        return {s: self.get(s) for s in SLOT_ORDER}

    @property
    def skipped(self) -> frozenset[str]:
        return frozenset(s for s in SLOT_ORDER if self.slot_state(s) is SlotState.SKIPPED)


def merge_fields(existing: IntakeFields, proposed: IntakeFields) -> IntakeFields:
    """
    Merge a backend proposal into the existing field state.

    Overwrite-if-present, else keep existing: a proposal can replace a value
    with another non-empty value but never clear it. Resolved slots only grow.
    """
    values: dict[str, str | None] = {}
    resolved = set(existing.resolved) | (set(proposed.resolved) & set(SLOT_ORDER))
    for slot in SLOT_ORDER:
        new_value = proposed.get(slot)
        if _is_present(new_value):
            values[slot] = new_value.strip()
            resolved.add(slot)
        else:
            values[slot] = existing.get(slot)
    return IntakeFields(**values, resolved=frozenset(resolved))


@dataclass
class ExtractionResult:
    assistant_message: str
    fields: IntakeFields  # partial proposal, merged by the caller
    is_complete: bool


@dataclass
class AnalysisResult:
    brief: str
    checkpoints: list[str]
    actionables: list[str]


# =============================================================================
# Contract
# =============================================================================


class IntakeChatBackend(ABC):
    """Field extraction + analysis contract shared by every backend."""

    name: str = "base"

    @abstractmethod
    async def extract(
        self,
        transcript: Sequence[ChatTurn],
        user_text: str,
        current: IntakeFields,
    ) -> ExtractionResult:
        """Produce the assistant reply and a partial field proposal for one turn.

        An empty transcript means the conversation is just starting: the
        reply is the opening prompt and user_text is not consumed.
        """

    @abstractmethod
    async def synthesize(
        self,
        title: str | None,
        description: str | None,
        attachment_texts: Sequence[str],
    ) -> AnalysisResult:
        """Produce the analysis brief, checkpoints and actionables."""


# =============================================================================
# Deterministic slot filling
# =============================================================================

SLOT_PROMPTS = {
    "title": "What is the **name** of the business process you'd like to submit?",
    "department": "Which **department** or team owns this process? (e.g. Finance, Operations, HR)",
    "description": (
        "Please give a short **description** of the process: what it does and where it hurts today."
    ),
    "location": (
        "Where is this process mainly carried out? (city, office, or 'Global'; "
        "leave empty to skip)"
    ),
    "business_unit": "Which **business unit** is responsible? (optional, leave empty to skip)",
    "contact_email": (
        "What is the best **email address** for the process owner? (optional, leave empty to skip)"
    ),
    "queue_priority": "How urgent is this? Choose a **priority**: Low, Medium, High, or Critical.",
}

OPENING_MESSAGE = (
    "Hello! I'll help you describe a business process for review, one question at a time. "
)

SUMMARY_LABELS = (
    ("title", "Process Name"),
    ("department", "Department"),
    ("description", "Description"),
    ("location", "Location"),
    ("business_unit", "Business Unit"),
    ("contact_email", "Contact Email"),
)

DEFAULT_CHECKPOINTS = [
    "Confirm every input data source is documented and accessible",
    "Check the regulatory and compliance obligations that apply to the process",
    "Map the actors, roles and hand-over points of the current process",
    "Quantify the manual effort spent per month",
    "Document exception paths and edge cases",
    "Agree the SLA and the acceptable downtime for an automated version",
    "List the upstream and downstream systems the process integrates with",
]

DEFAULT_ACTIONABLES = [
    "Draw the current-state process flow (BPMN 2.0)",
    "Rank quick-win automation candidates (high-volume, rule-based steps)",
    "Run a stakeholder workshop to validate the current-state documentation",
    "Define KPIs and success metrics for the automation effort",
    "Assess tooling options (RPA, workflow, AI services) where needed",
    "Build a phased implementation roadmap with milestones",
    "Plan change management and training for the affected teams",
]


def render_summary(fields: IntakeFields) -> str:
    lines = ["Thank you! I have all the information I need. Here's a summary:", ""]
    for slot, label in SUMMARY_LABELS:
        lines.append(f"- **{label}**: {fields.get(slot) or 'Not specified'}")
    priority = fields.queue_priority or DEFAULT_QUEUE_PRIORITY.value
    lines.append(f"- **Priority**: {priority}")
    lines.append("")
    lines.append(
        "Click **Submit** to confirm, then upload supporting documents for analysis."
    )
    return "\n".join(lines)


class SlotFillingChatBackend(IntakeChatBackend):
    """Deterministic backend: each user turn answers the first unset slot."""

    name = "slot_filling"

    async def extract(
        self,
        transcript: Sequence[ChatTurn],
        user_text: str,
        current: IntakeFields,
    ) -> ExtractionResult:
        if not transcript:
            return ExtractionResult(
                assistant_message=OPENING_MESSAGE + SLOT_PROMPTS["title"],
                fields=current,
                is_complete=False,
            )

        text = (user_text or "").strip()
        proposed, reask_slot = self._fill_next_slot(current, text)
        merged = merge_fields(current, proposed)
        pending = merged.pending_slots()

        if merged.is_complete:
            message = render_summary(merged)
            if pending:
                message += (
                    "\n\nIf you like, you can still add one more detail. "
                    + SLOT_PROMPTS[pending[0]]
                )
        elif reask_slot and text:
            message = (
                f"That answer is too long (at most {SLOT_MAX_LENGTHS[reask_slot]} characters). "
                + SLOT_PROMPTS[reask_slot]
            )
        elif reask_slot:
            message = "I still need this one before we continue. " + SLOT_PROMPTS[reask_slot]
        else:
            message = "Thank you! " + SLOT_PROMPTS[pending[0]]

        return ExtractionResult(
            assistant_message=message,
            fields=proposed,
            is_complete=merged.is_complete,
        )

    @staticmethod
    def _fill_next_slot(current: IntakeFields, text: str) -> tuple[IntakeFields, str | None]:
        """Return (proposal, slot to re-ask) for the first unset slot."""
        pending = current.pending_slots()
        if not pending:
            return IntakeFields(), None

        slot = pending[0]
        if slot == "queue_priority":
            return (
                IntakeFields(queue_priority=normalize_priority(text), resolved=frozenset({slot})),
                None,
            )
        if not text:
            if slot in OPTIONAL_SLOTS:
                return IntakeFields(resolved=frozenset({slot})), None
            return IntakeFields(), slot
        if not fits_slot(slot, text):
            return IntakeFields(), slot
        return IntakeFields(**{slot: text}, resolved=frozenset({slot})), None

    async def synthesize(
        self,
        title: str | None,
        description: str | None,
        attachment_texts: Sequence[str],
    ) -> AnalysisResult:
        count = len(attachment_texts)
        described = description.strip() if _is_present(description) else (
            "No description was provided."
        )
        if not described.endswith((".", "!", "?")):
            described += "."
        brief = (
            f"The '{title or 'Untitled'}' process has been reviewed. {described} "
            f"{count} supporting document{'s' if count != 1 else ''} "
            f"{'were' if count != 1 else 'was'} considered; the process shows clear "
            "opportunities for workflow standardisation and automation."
        )
        return AnalysisResult(
            brief=brief,
            checkpoints=list(DEFAULT_CHECKPOINTS),
            actionables=list(DEFAULT_ACTIONABLES),
        )


# =============================================================================
# LLM-backed
# =============================================================================

CHAT_SYSTEM_PROMPT = """You help collect information about a business process for review.
Extract these fields through a friendly conversation:
- title (required): a concise name for the process
- department (required): the business department that owns it
- description (required): what the process does, its purpose and pain points
- location: where the process runs
- businessUnit: the business unit or team responsible
- contactEmail: an email address for the process owner
- queuePriority: one of Low, Medium, High, Critical

Ask about one topic at a time. End every reply with a JSON block in exactly this format:
```json
{{"title": ..., "department": ..., "description": ..., "location": ..., "businessUnit": ...,
 "contactEmail": ..., "queuePriority": ..., "isComplete": true|false}}
```
Use null for anything not collected yet. Set "isComplete" to true only when title,
department and description are all known.

Fields collected so far:
{known_fields}"""

ANALYSIS_SYSTEM_PROMPT = """You are a business process analyst. Given information about a process, produce:
1. A one-paragraph executive brief (3-5 sentences).
2. A list of 5-8 checkpoints (validation steps for the process).
3. A list of 5-8 actionables (specific improvements or next steps).

Respond ONLY with valid JSON in this format:
{"brief": "...", "checkpoints": ["..."], "actionables": ["..."]}"""


def _truncate_text(text: str, max_chars: int) -> str:
    """Truncate text to stay within token limits."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n\n[... truncated for length ...]"


def _strip_code_fence(content: str) -> str:
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    if content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def parse_chat_reply(text: str) -> tuple[str, IntakeFields, bool]:
    """Split an LLM chat reply into (visible text, proposal, isComplete flag).

    A reply without a parseable JSON block carries no field information.
    """
    start = text.find("```json")
    if start < 0:
        start = text.rfind("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return text.strip(), IntakeFields(), False

    try:
        data = json.loads(_strip_code_fence(text[start : end + 1]))
    except json.JSONDecodeError:
        logger.info("Chat reply JSON block could not be parsed; treating as no new fields")
        return text.strip(), IntakeFields(), False
    if not isinstance(data, dict):
        return text.strip(), IntakeFields(), False

    values: dict[str, str] = {}
    for slot, key in SLOT_JSON_KEYS.items():
        value = data.get(key)
        if not _is_present(value):
            continue
        if fits_slot(slot, value.strip()):
            values[slot] = value.strip()
        else:
            logger.info("Dropping over-long %s proposal from chat reply", slot)
    if "queue_priority" in values:
        values["queue_priority"] = normalize_priority(values["queue_priority"])

    visible = text[:start].strip() if start > 0 else text.strip()
    return visible, IntakeFields(**values), data.get("isComplete") is True


def parse_analysis_reply(text: str) -> AnalysisResult:
    """Parse the analysis JSON; malformed output is a backend failure."""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise ChatBackendError("Analysis response did not contain JSON")
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ChatBackendError("Failed to parse analysis response") from e
    if not isinstance(data, dict):
        raise ChatBackendError("Analysis response was not a JSON object")

    brief = data.get("brief")
    if not _is_present(brief):
        raise ChatBackendError("Analysis response missing brief")

    def _string_list(key: str) -> list[str]:
        items = data.get(key) or []
        if not isinstance(items, list):
            raise ChatBackendError(f"Analysis response field '{key}' is not a list")
        return [str(item).strip() for item in items if str(item).strip()]

    return AnalysisResult(
        brief=brief.strip(),
        checkpoints=_string_list("checkpoints"),
        actionables=_string_list("actionables"),
    )


class LLMChatBackend(IntakeChatBackend):
    """Backend that asks a chat-completion provider for replies and analysis."""

    name = "llm"

    def __init__(self, provider: AIProvider, max_chars_per_attachment: int = 20000):
        self.provider = provider
        self.max_chars_per_attachment = max_chars_per_attachment

    async def _chat(self, messages: list[ChatMessage]) -> str:
        try:
            response = await self.provider.chat(messages)
        except AIProviderError as e:
            raise ChatBackendError(str(e)) from e
        return response.content

    async def extract(
        self,
        transcript: Sequence[ChatTurn],
        user_text: str,
        current: IntakeFields,
    ) -> ExtractionResult:
        known = {
            SLOT_JSON_KEYS[slot]: current.get(slot)
            for slot in SLOT_ORDER
            if current.slot_state(slot) is SlotState.VALUE
        }
        messages = [
            ChatMessage(
                role="system",
                content=CHAT_SYSTEM_PROMPT.format(known_fields=json.dumps(known) if known else "none"),
            )
        ]
        for turn in transcript:
            role = "user" if turn.role == ChatRole.USER.value else "assistant"
            messages.append(ChatMessage(role=role, content=turn.text))
        messages.append(ChatMessage(role="user", content=user_text))

        visible, proposed, flagged_complete = parse_chat_reply(await self._chat(messages))
        if not transcript:
            # Opening turn: keep the greeting, drop any proposal
            return ExtractionResult(visible, current, False)

        is_complete = flagged_complete and merge_fields(current, proposed).is_complete
        return ExtractionResult(visible, proposed, is_complete)

    async def synthesize(
        self,
        title: str | None,
        description: str | None,
        attachment_texts: Sequence[str],
    ) -> AnalysisResult:
        context = "\n---\n".join(
            _truncate_text(t, self.max_chars_per_attachment) for t in attachment_texts
        )
        content = (
            f"Process: {title or 'Untitled'}\n"
            f"Description: {description or 'N/A'}\n"
            f"Supporting documents:\n{context or 'None'}"
        )
        reply = await self._chat(
            [
                ChatMessage(role="system", content=ANALYSIS_SYSTEM_PROMPT),
                ChatMessage(role="user", content=content),
            ]
        )
        return parse_analysis_reply(reply)


def get_chat_backend() -> IntakeChatBackend:
    """Build the backend selected by AI_PROVIDER."""
    if settings.uses_mock_ai:
        return SlotFillingChatBackend()
    if not settings.AI_API_KEY:
        raise ChatBackendError("AI API key not configured")
    try:
        provider = get_provider(
            settings.AI_PROVIDER.strip().lower(),
            settings.AI_API_KEY,
            settings.AI_MODEL or None,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    except ValueError as e:
        raise ChatBackendError(str(e)) from e
    return LLMChatBackend(
        provider, max_chars_per_attachment=settings.ANALYSIS_MAX_CHARS_PER_ATTACHMENT
    )

