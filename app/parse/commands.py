import re
from typing import Optional

from app.types import CommandType, ParsedCommand

TRIGGER = re.compile(r"@?buddi\b", re.IGNORECASE)

DEFAULT_ROAST_TARGET = "someone"
DEFAULT_SCENARIO = "do something embarrassing"

ROAST = re.compile(r"\broast(?:ed|ing)?\b(?:\s+(?P<target>[^\s,.!?]+))?")
TRUTH_OR_DARE = re.compile(r"\btruth\b|\bdare\b")
ADVICE = re.compile(r"\b(?:advice|advise|help)\b")
ADVICE_TOPIC = re.compile(r"\badvice\b.*?\b(?:about|on)\s+(?P<topic>.+)$")
SUMMARIZE = re.compile(r"\bsummari[sz]e\b|\bsummary\b|what did i miss|catch me up")
MOST_LIKELY = re.compile(r"\bmost likely\b(?:\s+to\b(?P<scenario>.*))?")

NO_MATCH = ParsedCommand()


def _clean(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = s.strip().rstrip("?!.")
    return s or None


def _roast(text: str) -> Optional[ParsedCommand]:
    m = ROAST.search(text)
    if not m:
        return None
    target = _clean(m.group("target"))
    # "buddi roast" with nothing after, or the trigger word itself
    if target is None or TRIGGER.fullmatch(target):
        target = DEFAULT_ROAST_TARGET
    return ParsedCommand(type=CommandType.ROAST, target=target, confidence=0.9)


def _truth_or_dare(text: str) -> Optional[ParsedCommand]:
    if not TRUTH_OR_DARE.search(text):
        return None
    return ParsedCommand(type=CommandType.TRUTH_OR_DARE, confidence=0.9)


def _advice(text: str) -> Optional[ParsedCommand]:
    if not ADVICE.search(text):
        return None
    m = ADVICE_TOPIC.search(text)
    topic = _clean(m.group("topic")) if m else None
    return ParsedCommand(type=CommandType.ADVICE, target=topic, confidence=0.8)


def _summarize(text: str) -> Optional[ParsedCommand]:
    if not SUMMARIZE.search(text):
        return None
    return ParsedCommand(type=CommandType.SUMMARIZE, confidence=0.9)


def _most_likely(text: str) -> Optional[ParsedCommand]:
    m = MOST_LIKELY.search(text)
    if not m:
        return None
    scenario = _clean(m.group("scenario")) or DEFAULT_SCENARIO
    return ParsedCommand(type=CommandType.MOST_LIKELY_TO, target=scenario, confidence=0.8)


# Checked in order; first match wins
MATCHERS = [_roast, _truth_or_dare, _advice, _summarize, _most_likely]


def parse_command(text: Optional[str]) -> ParsedCommand:
    if not text or not isinstance(text, str):
        return NO_MATCH
    normalized = text.lower().strip()
    if not TRIGGER.search(normalized):
        return NO_MATCH
    for matcher in MATCHERS:
        parsed = matcher(normalized)
        if parsed is not None:
            return parsed
    return NO_MATCH
