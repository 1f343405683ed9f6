# dialogue/llm/groq_client.py
import logging
from functools import lru_cache
from typing import List, Optional

from groq import Groq, GroqError

from app.config import GROQ_API_KEY, GROQ_FEEDBACK_MODEL, GROQ_REPLY_MODEL
from app.errors import GenerationFailure
from dialogue.llm.prompt_builder import build_reply_prompt

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_groq_client() -> Groq:
    """Return a cached Groq client configured from the environment."""

    return Groq(api_key=GROQ_API_KEY)


class GroqResponseGenerator:
    """
    Text generation for simulated speakers and session feedback.

    Both calls block; callers run them with asyncio.to_thread. Any SDK error
    or empty completion is raised as GenerationFailure.
    """

    def __init__(
        self,
        client: Optional[Groq] = None,
        reply_model: str = GROQ_REPLY_MODEL,
        feedback_model: str = GROQ_FEEDBACK_MODEL,
    ):
        self._client = client
        self.reply_model = reply_model
        self.feedback_model = feedback_model

    @property
    def client(self) -> Groq:
        if self._client is None:
            try:
                self._client = get_groq_client()
            except GroqError as e:
                raise GenerationFailure(f"Groq client unavailable: {e}") from e
        return self._client

    def _complete(self, model: str, messages: list, **options) -> str:
        try:
            res = self.client.chat.completions.create(model=model, messages=messages, **options)
        except GroqError as e:
            logger.warning(f"Groq call failed ({model}): {e}")
            raise GenerationFailure(str(e)) from e

        content = (res.choices[0].message.content or "").strip() if res.choices else ""
        if not content:
            raise GenerationFailure(f"Empty completion from {model}")
        return content

    def generate_reply(
        self,
        topic: str,
        personality_prompt: str,
        recent_messages: List[str],
        context: str = "",
    ) -> str:
        prompt = build_reply_prompt(topic, personality_prompt, recent_messages, context)
        logger.debug(f"Reply prompt for topic={topic!r}, context lines={len(recent_messages)}")
        return self._complete(
            self.reply_model,
            [{"role": "user", "content": prompt}],
            max_tokens=200,
            temperature=0.8,
        )

    def generate_structured_feedback(self, prompt: str) -> str:
        return self._complete(
            self.feedback_model,
            [
                {
                    "role": "system",
                    "content": "You are a strict group discussion evaluator. Answer with JSON only."
                },
                {
                    "role": "user",
                    "content": prompt
                }
            ],
            temperature=0,
            response_format={"type": "json_object"},
        )
