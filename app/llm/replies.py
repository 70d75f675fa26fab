import asyncio
import random
from typing import Callable, Dict, Optional

from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI

from app.config import ERROR_MESSAGES, settings
from app.obs.logger import log_event
from app.obs.metrics import inc_counter
from app.parse.commands import DEFAULT_ROAST_TARGET, DEFAULT_SCENARIO
from app.state.response_cache import ResponseCache
from app.state.store import StateStore
from app.types import CommandType

SYSTEM = """You are Buddi, a chaotic, slightly insulting bot that lives in SMS group chats.
You roast everyone but stay hilarious, never genuinely harmful.
Voice: Gen Z slang, sharp punchlines, strategic emoji (💀 😈 🤷‍♂️).
Rules:
- Stay in character, even when something goes wrong.
- Keep replies to 2-4 short sentences.
- No dangerous dares and no medical, legal or financial advice.
- When unsure, pick the lighter option.
"""

PROMPTS: Dict[str, str] = {
    CommandType.ROAST: (
        'Generate a savage roast for "{subject}". Brutally funny, slightly insulting, '
        "not genuinely harmful. 2-3 sentences max."
    ),
    CommandType.TRUTH_OR_DARE: (
        'Generate either a TRUTH question or a DARE challenge. Start with "TRUTH:" or "DARE:". '
        "Embarrassing but harmless, 1-2 sentences."
    ),
    CommandType.ADVICE: (
        "Give brutally honest advice about {subject}. Roast their life choices, then give "
        "surprisingly wise advice and end with a reality check. 2-4 sentences."
    ),
    CommandType.SUMMARIZE: (
        "Create a savage recap of this conversation: {subject}. Roast everyone's "
        "contributions. 2-3 sentences."
    ),
    CommandType.MOST_LIKELY_TO: (
        'Pick someone from the group and say they\'re most likely to "{subject}". '
        "Give a savage reason why. 2-3 sentences."
    ),
}

# Summaries depend on the sender's own history, so they are never shared
CACHEABLE = {
    CommandType.ROAST,
    CommandType.TRUTH_OR_DARE,
    CommandType.ADVICE,
    CommandType.MOST_LIKELY_TO,
}

NAMES = ["Alex", "Sam", "Jordan", "Taylor", "Casey", "Morgan", "Riley", "Quinn"]


def name_for_number(phone_number: str) -> str:
    digits = "".join(c for c in phone_number[-4:] if c.isdigit()) or "0"
    return NAMES[int(digits) % len(NAMES)]


def default_llm() -> ChatOpenAI:
    if not settings.OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY environment variable is missing")
    return ChatOpenAI(
        model=settings.OPENAI_MODEL,
        temperature=settings.OPENAI_TEMPERATURE,
        max_tokens=settings.OPENAI_MAX_TOKENS,
        api_key=settings.OPENAI_API_KEY,
    )


class ReplyGenerator:
    """Produces Buddi's reply for a parsed command, consulting the shared cache."""

    def __init__(
        self,
        store: StateStore,
        cache: ResponseCache,
        llm: Optional[ChatOpenAI] = None,
        llm_factory: Callable[[], ChatOpenAI] = default_llm,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.cache = cache
        self._llm = llm
        self._llm_factory = llm_factory
        self.rng = rng or random.Random()

    @property
    def llm(self) -> ChatOpenAI:
        # Created on first use so the app can boot without an API key
        if self._llm is None:
            self._llm = self._llm_factory()
        return self._llm

    async def generate(self, command_type: str, target: Optional[str], sender: str) -> str:
        if command_type == CommandType.ROAST:
            return await self._reply(command_type, target or DEFAULT_ROAST_TARGET)
        if command_type == CommandType.TRUTH_OR_DARE:
            return await self._reply(command_type, None)
        if command_type == CommandType.ADVICE:
            return await self._reply(command_type, target)
        if command_type == CommandType.SUMMARIZE:
            return await self._summarize(sender)
        if command_type == CommandType.MOST_LIKELY_TO:
            return await self._most_likely(target or DEFAULT_SCENARIO)
        return ERROR_MESSAGES["UNKNOWN_COMMAND"]

    async def generate_with_timeout(
        self, command_type: str, target: Optional[str], sender: str, timeout: Optional[float] = None
    ) -> str:
        """Never raises; a failure or timeout becomes the API_FAILURE fallback."""
        timeout = timeout if timeout is not None else settings.RESPONSE_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(self.generate(command_type, target, sender), timeout=timeout)
        except asyncio.TimeoutError:
            inc_counter("reply_failures_total", {"reason": "timeout"})
            log_event("reply_timeout", level="WARNING", command=command_type, timeout_seconds=timeout)
        except Exception as e:
            inc_counter("reply_failures_total", {"reason": "error"})
            log_event("reply_failed", level="ERROR", command=command_type, error=str(e))
        return ERROR_MESSAGES["API_FAILURE"]

    async def _reply(self, command_type: str, subject: Optional[str]) -> str:
        cacheable = command_type in CACHEABLE
        if cacheable:
            cached = self.cache.get(command_type, subject)
            if cached is not None:
                log_event("reply_generated", command=command_type, from_cache=True)
                return cached

        text = await self._complete(command_type, subject)
        if cacheable:
            self.cache.put(command_type, subject, text)
        log_event("reply_generated", command=command_type, from_cache=False)
        return text

    async def _complete(self, command_type: str, subject: Optional[str]) -> str:
        template = PROMPTS[command_type]
        if command_type == CommandType.ADVICE and not subject:
            subject = "life in general"
        prompt = ChatPromptTemplate.from_messages([("system", SYSTEM), ("user", template)])
        msg = prompt.format_messages(subject=subject or "")
        res = await self.llm.ainvoke(msg)
        content = res.content.strip() if isinstance(res.content, str) else ""
        if not content:
            raise ValueError("No response generated from OpenAI")
        return content

    async def _summarize(self, sender: str) -> str:
        history = self.store.get_history(sender)
        if not history:
            return ERROR_MESSAGES["NO_HISTORY"]
        context = ", ".join(
            f"{e.command_type} ({e.target})" if e.target else e.command_type
            for e in history[-5:]
        )
        return await self._reply(CommandType.SUMMARIZE, context)

    async def _most_likely(self, scenario: str) -> str:
        senders = self.store.recent_senders()
        if senders:
            picked = self.rng.choice(senders)
            scenario = f"{scenario} ({name_for_number(picked)})"
        return await self._reply(CommandType.MOST_LIKELY_TO, scenario)
