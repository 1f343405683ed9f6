import asyncio
import json
import logging
import re
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from app.errors import GenerationFailure
from app.models.session import FeedbackReport, Participant, TranscriptEntry
from evaluator.prompt_builder import build_prompt, format_roster, format_transcript
from evaluator.rubric import RUBRIC_TEXT

logger = logging.getLogger(__name__)

DEGRADED_SUMMARY = "Unable to generate feedback at this time."


def degraded_report() -> FeedbackReport:
    return FeedbackReport(overall_summary=DEGRADED_SUMMARY, participant_feedback=[])


def parse_report(raw: str) -> Optional[FeedbackReport]:
    """Pull the first JSON object out of the model output and validate it."""
    match = re.search(r"\{.*\}", raw or "", re.DOTALL)
    if not match:
        return None
    try:
        return FeedbackReport.model_validate(json.loads(match.group()))
    except (json.JSONDecodeError, SchemaError) as e:
        logger.warning(f"Feedback output rejected: {e}")
        return None


class FeedbackAggregator:
    """Turns a finished transcript and roster into per-participant scorecards."""

    def __init__(self, generator):
        self.generator = generator

    async def generate_feedback(
        self,
        topic: str,
        transcript: List[TranscriptEntry],
        participants: List[Participant],
    ) -> FeedbackReport:
        prompt = build_prompt(
            topic=topic,
            roster_text=format_roster(participants),
            transcript_text=format_transcript(transcript),
            rubric_text=RUBRIC_TEXT,
        )
        logger.info(f"🔍 Generating feedback for {len(participants)} participants, {len(transcript)} messages")

        try:
            raw = await asyncio.to_thread(self.generator.generate_structured_feedback, prompt)
        except GenerationFailure as e:
            logger.warning(f"Feedback generation failed: {e}")
            return degraded_report()
        except Exception:
            logger.exception("Unexpected error while generating feedback")
            return degraded_report()

        report = parse_report(raw)
        if report is None:
            logger.warning("❌ Feedback output was not a valid report")
            return degraded_report()

        logger.info("✅ Feedback generated")
        return report
