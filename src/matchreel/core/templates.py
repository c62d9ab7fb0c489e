"""Moment text — turns moment candidates into presentable cards.

Every moment type has a fixed list of templates. Which variant a candidate gets
is a pure function of the candidate's identity (``id:agent:turn:seq``), so the
same moment always renders the same words on every machine and every re-render,
while two occurrences of the same moment type can read differently.

Details are ``str.format`` templates over the candidate's context. A template
that needs a field the detector could not fill falls back to the moment type's
generic sentence instead of rendering a broken string.
"""

from __future__ import annotations

from dataclasses import dataclass

from matchreel.models.moments import MomentCandidate, MomentCard, MomentId


@dataclass(frozen=True)
class MomentTemplate:
    icon: str
    title: str
    detail: str
    category: str


MOMENT_TEMPLATES: dict[MomentId, tuple[MomentTemplate, ...]] = {
    "misnavigation": (
        MomentTemplate(
            "\U0001f9ed",
            "Wrong turn",
            "No door between {current_room_label} and {target_room_label}",
            "navigation",
        ),
        MomentTemplate(
            "\U0001f6a7", "Blocked path", "Move blocked near {current_room_label}", "navigation"
        ),
    ),
    "locked_door": (
        MomentTemplate("\U0001f512", "Door locked", "{door_label} needs {required_item_label}", "navigation"),
        MomentTemplate("\U0001f6aa", "Access denied", "Couldn't pass {door_label}", "navigation"),
    ),
    "interaction_snag": (
        MomentTemplate("⚠️", "Interaction failed", "No {target_label} available here", "interaction"),
        MomentTemplate("\U0001f6ab", "Nothing to use", "Couldn't reach {target_label}", "interaction"),
    ),
    "premature_extraction": (
        MomentTemplate(
            "\U0001f6f0️",
            "Too soon to extract",
            "Extraction point is {extraction_room_label}",
            "extraction",
        ),
        MomentTemplate("\U0001f4cd", "Wrong exit", "Not at {extraction_room_label}", "extraction"),
    ),
    "schema_fumble": (
        MomentTemplate("\U0001f9e9", "Schema fallback", "Decoder recovered from {fallback_reason}", "decoder"),
        MomentTemplate(
            "\U0001f4c4", "Format hiccup", "Action parsed via fallback ({fallback_reason})", "decoder"
        ),
    ),
    "terminal_hacked": (
        MomentTemplate("\U0001f4bb", "Terminal hacked", "{terminal_label} cracked, intel secured", "objective"),
        MomentTemplate("\U0001f4bb", "Access granted", "{terminal_label} is fully breached", "objective"),
    ),
    "terminal_progress": (
        MomentTemplate(
            "⏳",
            "Hacking progress",
            "{terminal_label} {hack_progress:g}/{hack_required:g}",
            "objective",
        ),
        MomentTemplate(
            "\U0001f4bb",
            "Working the console",
            "Progress {hack_progress:g}/{hack_required:g}",
            "objective",
        ),
    ),
    "item_acquired": (
        MomentTemplate("\U0001f4e6", "Item secured", "{item_label} collected", "inventory"),
        MomentTemplate("\U0001f392", "Pickup confirmed", "{item_label} added to pack", "inventory"),
    ),
    "clean_extraction": (
        MomentTemplate(
            "\U0001f681", "Clean extraction", "{agent_label} exfiltrated with the objective", "extraction"
        ),
        MomentTemplate("✅", "Mission complete", "{agent_label} extraction successful", "extraction"),
    ),
    "guard_closing": (
        MomentTemplate("\U0001f6a8", "Guard closing in", "{guard_label} near {agent_room_label}", "stealth"),
        MomentTemplate(
            "\U0001f46e", "Patrol nearby", "{guard_room_label} adjacent to {agent_room_label}", "stealth"
        ),
    ),
    "stalled_objective": (
        MomentTemplate("⏸️", "Objective stalled", "No progress for {stalled_turns} turns", "tempo"),
        MomentTemplate("⏸️", "Momentum fading", "Stalled for {stalled_turns} turns", "tempo"),
    ),
    "noise_creep": (
        MomentTemplate("\U0001f50a", "Noise rising", "Noise at {noise_percent}% of next alert", "stealth"),
        MomentTemplate("\U0001f50a", "Sound spike", "Approaching threshold {next_threshold:g}", "stealth"),
    ),
    "near_miss": (
        MomentTemplate(
            "\U0001f9df‍♂️",
            "Near miss",
            "{guard_label} crossed paths in {agent_room_label}",
            "stealth",
        ),
        MomentTemplate("\U0001f441️", "Close call", "Guard nearly spotted {agent_label}", "stealth"),
    ),
}

# Context-free sentences used when a template's fields are missing.
GENERIC_DETAILS: dict[MomentId, str] = {
    "misnavigation": "Tried to move somewhere unreachable",
    "locked_door": "A locked door blocked the way",
    "interaction_snag": "Nothing to interact with here",
    "premature_extraction": "Tried to extract from the wrong place",
    "schema_fumble": "Action recovered through a decoder fallback",
    "terminal_hacked": "A terminal was fully breached",
    "terminal_progress": "Hacking is under way",
    "item_acquired": "An item was collected",
    "clean_extraction": "The crew got out",
    "guard_closing": "A guard is one room away",
    "stalled_objective": "The objective has stalled",
    "noise_creep": "Noise is creeping toward the next alert",
    "near_miss": "A guard nearly spotted the crew",
}


def hash_seed(value: str) -> int:
    """31-multiplier string hash over UTF-16 code units, kept to 32 unsigned bits."""
    result = 0
    encoded = value.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        result = (result * 31 + code_unit) & 0xFFFFFFFF
    return result


def template_seed(candidate: MomentCandidate) -> str:
    """Identity string the variant choice is derived from."""
    return f"{candidate.id}:{candidate.agent_id}:{candidate.turn}:{candidate.seq_range.start}"


def pick_template(candidate: MomentCandidate) -> MomentTemplate | None:
    templates = MOMENT_TEMPLATES.get(candidate.id)
    if not templates:
        return None
    if len(templates) == 1:
        return templates[0]
    return templates[hash_seed(template_seed(candidate)) % len(templates)]


def render_detail(candidate: MomentCandidate, template: MomentTemplate) -> str:
    """Fill the template from context, or fall back to the generic sentence."""
    try:
        return template.detail.format_map(candidate.context.template_fields())
    except (KeyError, ValueError, TypeError):
        return GENERIC_DETAILS[candidate.id]


def candidate_to_card(candidate: MomentCandidate) -> MomentCard | None:
    """Render one candidate. Returns None for a moment type without templates."""
    template = pick_template(candidate)
    if template is None:
        return None
    seq = candidate.seq_range.start
    return MomentCard(
        id=f"moment-{candidate.id}-{seq}",
        turn=candidate.turn,
        seq=seq,
        agent_id=candidate.agent_id,
        moment_register=candidate.moment_register,
        priority=candidate.priority,
        icon=template.icon,
        title=template.title,
        detail=render_detail(candidate, template),
        category=template.category,
        moment_id=candidate.id,
    )
