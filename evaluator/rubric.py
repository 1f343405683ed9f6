RUBRIC_TEXT = """
You must evaluate EVERY participant listed in the roster, human and simulated.

Scoring Rubric (every score 0-10, one decimal allowed):

1. Clarity (0–10)
- Structure of each contribution
- Plain, precise wording
- Points are easy to follow

2. Engagement (0–10)
- Frequency and timing of contributions
- Responds to what others said
- Moves the discussion forward

3. Analysis (0–10)
- Quality of reasoning
- Use of evidence, examples or data
- Depth of insight into the topic

4. Overall Score (0–10)
- Holistic judgement of the participant's performance
- Should be consistent with the three scores above

Rules:
- Base every score ONLY on the transcript
- A participant who never spoke gets low engagement, not zero for clarity
- Strengths and improvements must each have 1-3 short items
- Do NOT invent statements that are not in the transcript
"""
