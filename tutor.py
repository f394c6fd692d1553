import logging
import os
import re
from typing import Dict, Iterable, List, Optional, Sequence

from schemas import KBResult, Persona, RQSResult, Turn
from teaching_modes import TEACHING_MODES
from engines.question_state import STATE_GUIDANCE

_LOGGER = logging.getLogger(__name__)

# --------- Model/endpoint from environment ---------
MODEL_ID = os.getenv("MODEL_ID", "gpt-4o-mini")
LLM_URL = os.getenv("LLM_URL", "http://localhost:4891/v1/chat/completions")

TURN_MAX_TOKENS = 500
FINAL_MAX_TOKENS = 1200
CORE_TEXT_LIMIT = 3000
FINAL_CORE_TEXT_LIMIT = 2000

# --------- Agent replies that signal the persona is lost ---------
CONFUSION_KEYWORDS = (
    "i don't understand",
    "i don't get",
    "i do not understand",
    "confused",
    "confusing",
    "lost me",
    "what do you mean",
    "not sure what you mean",
    "one more time",
    "explain it again",
    "わかんない",
    "わからない",
    "もう一回",
)

# --------- Learner input hygiene ---------
INJECTION_PATTERNS = (
    re.compile(r"ignore\s+(previous|above|all)\s+(instructions?|prompts?|rules?)", re.IGNORECASE),
    re.compile(r"you\s+are\s+now\s+", re.IGNORECASE),
    re.compile(r"new\s+instructions?:", re.IGNORECASE),
    re.compile(r"system\s*prompt", re.IGNORECASE),
    re.compile(r"disregard\s+(everything|all)", re.IGNORECASE),
    re.compile(r"pretend\s+you\s+are", re.IGNORECASE),
    re.compile(r"act\s+as\s+if", re.IGNORECASE),
    re.compile(r"forget\s+(everything|your\s+instructions)", re.IGNORECASE),
)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_learner_input(text: str) -> str:
    return _CONTROL_CHARS_RE.sub("", text or "")


def detect_prompt_injection(text: str) -> bool:
    return any(pattern.search(text or "") for pattern in INJECTION_PATTERNS)


def is_confused_reply(text: str) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in CONFUSION_KEYWORDS)


def trailing_confusion_streak(turns: Sequence[Turn]) -> int:
    """Count the most recent agent replies that matched the confusion keywords, back to back."""

    streak = 0
    for turn in reversed(turns):
        if turn.role != "agent":
            continue
        if not is_confused_reply(turn.text):
            break
        streak += 1
    return streak


def _strip_quotes(text: str) -> str:
    return re.sub(r"[\"“”「」]", "", text or "").strip()


def quit_message(persona: Persona) -> str:
    return f"{persona.emoji} {_strip_quotes(persona.struggle)}... Review the material once more and then give it another try!"


def default_closing(persona: Persona) -> str:
    return f"{persona.emoji} Thanks for teaching me today!"


def build_messages(turns: Iterable[Turn], user_message: str) -> List[Dict[str, str]]:
    """Map the session history onto chat roles for the generator."""

    messages = [
        {"role": "user" if turn.role == "learner" else "assistant", "content": turn.text}
        for turn in turns
    ]
    messages.append({"role": "user", "content": user_message})
    return messages


def _format_seeds(question_seeds: Sequence[str], persona: Persona) -> str:
    seeds = [seed.strip() for seed in question_seeds if seed and seed.strip()]
    if not seeds:
        return ""
    lines = "\n".join(f"{idx}. {seed}" for idx, seed in enumerate(seeds, start=1))
    return (
        f"\n## Question hints (use them as inspiration, never verbatim; ask naturally in {persona.name}'s voice)\n"
        f"{lines}"
    )


def _state_guide(state: str, reason: str, rqs: Optional[RQSResult], kb: Optional[KBResult], persona: Persona) -> str:
    lines = [
        f"## Questioning strategy (current state: {state})",
        f"Template for reference: {STATE_GUIDANCE.get(state, '')}",
        f"Why this state: {reason}",
    ]
    if rqs is not None:
        sig = rqs.signals
        lines.append(
            f"Previous RQS: {rqs.score:.2f} (sentences:{sig.sentence_quality} relevance:{sig.relevance} "
            f"information:{sig.info_content} elaboration:{sig.elaboration})"
        )
    if kb is not None:
        lines.append(f"Knowledge-building signal: {kb.mode}")
    lines.append(
        f"Use the template as inspiration and ask naturally in {persona.name}'s voice. Never copy the template as is."
    )
    return "\n".join(lines)


def build_teaching_prompt(
    *,
    topic: str,
    core_text: str,
    mode: str,
    persona: Persona,
    state: str,
    state_reason: str,
    rqs: Optional[RQSResult] = None,
    kb: Optional[KBResult] = None,
    question_seeds: Sequence[str] = (),
    leading_detected: bool = False,
) -> str:
    """Instructions for a normal turn: stay in character and ask one question."""

    if core_text and len(core_text) > CORE_TEXT_LIMIT:
        _LOGGER.debug("Reference material truncated from %d to %d characters", len(core_text), CORE_TEXT_LIMIT)
    lore = f"Background: {persona.lore}\n" if persona.lore else ""
    leading_note = (
        "\nWarning: your previous question was leading. Ask neutrally this time." if leading_detected else ""
    )
    return f"""You are the character "{persona.name}" {persona.emoji}. The user is teaching you about "{topic}".

## Character (never break it)
{lore}Personality: {persona.personality}
Speaking style: {persona.speaking_style}
When praising: {persona.praise}
When you cannot follow: {persona.struggle}
When the explanation is lacking: {persona.confused}

## Reference knowledge (internal only, never reveal it)
{(core_text or "")[:CORE_TEXT_LIMIT]}

## Rules
1. Keep {persona.name}'s speaking style at all times ({persona.speaking_style})
2. Never hint at the answer. Questions like "that means X, right?" or "so you're saying X?" are forbidden.
3. Only react positively to accurate explanations. Answer vague or wrong ones like {persona.confused}
4. Exactly one question per reply. {TEACHING_MODES.guide(mode)}
5. Reply in 2-4 sentences. No bullet points. Natural conversation.{_format_seeds(question_seeds, persona)}{leading_note}

{_state_guide(state, state_reason, rqs, kb, persona)}"""


def build_final_prompt(
    *,
    topic: str,
    core_text: str,
    mode: str,
    persona: Persona,
    criteria: str,
    output_format: str,
) -> str:
    """Instructions for the closing turn: a short in-character wrap-up plus the score block."""

    known = TEACHING_MODES.get(mode)
    mode_label = known.label if known else mode
    core_ref = (
        f"\n\n## Original material (reference for scoring)\n{core_text[:FINAL_CORE_TEXT_LIMIT]}" if core_text else ""
    )
    return f"""You are the character "{persona.name}" {persona.emoji}. You are wrapping up a study session about "{topic}" (teaching mode: {mode_label}).

## Character
Personality: {persona.personality}
Speaking style: {persona.speaking_style}
When praising: {persona.praise}{core_ref}

{criteria}

## Output format (strict)
Write 2-3 sentences in {persona.name}'s voice, then output the following JSON.
{output_format}"""
