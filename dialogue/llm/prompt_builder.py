from typing import List


def build_reply_prompt(
    topic: str,
    personality_prompt: str,
    recent_messages: List[str],
    context: str = "",
) -> str:
    conversation = "\n".join(recent_messages) if recent_messages else "No one has spoken yet."

    return f"""
{personality_prompt}

========================
DISCUSSION TOPIC
========================
"{topic}"

========================
CONVERSATION SO FAR (oldest first)
========================
{conversation}

========================
WHAT JUST HAPPENED
========================
{context or "Continue the group discussion naturally."}

========================
RULES
========================
- Respond naturally as if you're in a live group discussion.
- Don't introduce yourself or mention that you're an AI.
- Don't prefix your answer with your name.
- Do NOT use markdown.
""".strip()
