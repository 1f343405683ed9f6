import json

import pytest

from app.errors import GenerationFailure
from app.models.session import Participant, TranscriptEntry
from app.services.feedback_aggregator import DEGRADED_SUMMARY, FeedbackAggregator, parse_report
from conftest import VALID_FEEDBACK, FakeGenerator

TRANSCRIPT = [
    TranscriptEntry(speaker="Alice", message="What should we prioritize?", timestamp="10:00:00"),
    TranscriptEntry(speaker="AI Leader", message="Cutting emissions, starting now.", timestamp="10:00:03"),
]

ROSTER = [
    Participant(id=1, session_id="abc12345", name="AI Leader", kind="simulated", personality="confident"),
    Participant(id=2, session_id="abc12345", name="Alice", kind="human"),
]


async def run(feedback):
    generator = FakeGenerator(feedback=feedback)
    report = await FeedbackAggregator(generator).generate_feedback("Climate Change Solutions", TRANSCRIPT, ROSTER)
    return report, generator


@pytest.mark.parametrize("raw", [
    "Sorry, I cannot evaluate this.",
    "{not json at all}",
    json.dumps({"participant_feedback": []}),
    json.dumps({"overall_summary": "ok", "participant_feedback": [{"name": "Alice"}]}),
    "",
])
async def test_unusable_output_gives_degraded_report(raw):
    report, _ = await run(raw)

    assert report.overall_summary == DEGRADED_SUMMARY
    assert report.participant_feedback == []


@pytest.mark.parametrize("error", [GenerationFailure("timeout"), RuntimeError("boom")])
async def test_adapter_errors_give_degraded_report(error):
    report, _ = await run(error)

    assert report.overall_summary == DEGRADED_SUMMARY
    assert report.participant_feedback == []


async def test_valid_report_is_parsed_from_surrounding_text():
    raw = "Here is the evaluation:\n" + json.dumps(VALID_FEEDBACK) + "\nThanks."

    report, _ = await run(raw)

    assert report.overall_summary == VALID_FEEDBACK["overall_summary"]
    alice = report.participant_feedback[0]
    assert alice.name == "Alice"
    assert alice.clarity == 8.0
    assert alice.improvements == ["Back claims with data"]


def test_scores_are_clamped_and_rounded():
    raw = json.dumps({
        "overall_summary": "Mixed.",
        "participant_feedback": [
            {"name": "Bob", "overall_score": 12, "clarity": -3, "engagement": 6.66, "analysis": "7"},
        ],
    })

    bob = parse_report(raw).participant_feedback[0]

    assert (bob.overall_score, bob.clarity, bob.engagement, bob.analysis) == (10.0, 0.0, 6.7, 7.0)
    assert bob.strengths == [] and bob.improvements == []


async def test_prompt_carries_roster_transcript_and_rubric():
    _, generator = await run(json.dumps(VALID_FEEDBACK))

    prompt = generator.feedback_prompts[0]
    assert '"Climate Change Solutions"' in prompt
    assert "- AI Leader (simulated, confident)" in prompt
    assert "- Alice (human)" in prompt
    assert "[10:00:03] AI Leader: Cutting emissions, starting now." in prompt
    assert "CLARITY" in prompt.upper()
