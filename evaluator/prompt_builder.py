from typing import Iterable


def build_prompt(
    topic: str,
    roster_text: str,
    transcript_text: str,
    rubric_text: str,
):
    return f"""
You are a senior group discussion assessor evaluating every participant of a recorded discussion.

You MUST strictly follow the instructions below.

========================
DISCUSSION TOPIC
========================
"{topic}"

========================
PARTICIPANTS
========================
{roster_text}

========================
RUBRIC DEFINITIONS
========================
{rubric_text}

========================
TRANSCRIPT (oldest first)
========================
{transcript_text}

========================
STRICT INSTRUCTIONS (READ CAREFULLY)
========================
- Give one entry per participant, using the exact names above.
- Score EACH rubric category independently.
- Use numbers, not strings, for scores.
- Do NOT write explanations outside JSON.
- Do NOT use markdown.

========================
REQUIRED JSON OUTPUT (EXACT FORMAT)
========================
{{
  "overall_summary": "",
  "participant_feedback": [
    {{
      "name": "",
      "overall_score": 0,
      "clarity": 0,
      "engagement": 0,
      "analysis": 0,
      "strengths": [""],
      "improvements": [""]
    }}
  ]
}}

RETURN ONLY THIS JSON OBJECT.
""".strip()


def format_roster(participants: Iterable) -> str:
    lines = []
    for p in participants:
        label = f"simulated, {p.personality}" if p.is_simulated else "human"
        lines.append(f"- {p.name} ({label})")
    return "\n".join(lines) or "No participants recorded."


def format_transcript(transcript: Iterable) -> str:
    lines = [f"[{t.timestamp}] {t.speaker}: {t.message}" for t in transcript]
    return "\n".join(lines) or "The transcript is empty."
