"""Prompt templates for course content generation.

Each prompt spells out the exact JSON shape expected back; the result is
validated against app.schemas.content regardless of what the model claims.
"""

SYSTEM_PROMPT = (
    "You are an expert curriculum designer. You build practical, well-sequenced "
    "learning paths. Always answer with a single JSON object and nothing else."
)


SKELETON_PROMPT = """Design a learning path on "{topic}" for a {level} learner who can study {time_per_day} minutes per day.

Return JSON with exactly this shape:
{{
  "topic": "{topic}",
  "level": "{level}",
  "modules": [
    {{
      "order": 1,
      "title": "5-100 characters",
      "description": "10-500 characters",
      "outcomes": ["2 to 6 concrete learning outcomes"]
    }}
  ]
}}

Rules:
- EXACTLY 5 modules, with "order" 1, 2, 3, 4, 5.
- Modules progress from fundamentals to applied work.
- Each module has between 2 and 6 outcomes.
"""


LESSONS_PROMPT = """Course topic: "{topic}"
Module {order}: {title}
Module description: {description}
Module outcomes:
{outcomes}

The learner studies {time_per_day} minutes per day. Break this module into lesson steps.

Return JSON with exactly this shape:
{{
  "moduleOrder": {order},
  "steps": [
    {{
      "order": 1,
      "title": "5-150 characters",
      "type": "learn | practice | apply",
      "estimatedMinutes": 15,
      "content": "short lesson body in markdown"
    }}
  ]
}}

Rules:
- Between 3 and 10 steps, ordered from 1.
- "type" is one of learn, practice, apply; end the module with an apply step.
- "estimatedMinutes" is an integer between 1 and 60.
"""


QUIZ_PROMPT = """Course topic: "{topic}"
Module {order}: {title}
Module description: {description}

Write a quiz that checks the outcomes of this module.

Return JSON with exactly this shape:
{{
  "moduleOrder": {order},
  "questions": [
    {{
      "type": "mcq | short | code",
      "question": "at least 10 characters",
      "options": ["required for mcq, at least 2"],
      "answerKey": "for mcq, exactly one of the options",
      "explanation": "at least 10 characters",
      "difficulty": "easy | medium | hard",
      "tags": ["keywords"]
    }}
  ]
}}

Rules:
- Between 5 and 15 questions.
- Every mcq question has at least 2 options and its answerKey is copied verbatim from the options.
- Omit "options" for short and code questions.
"""


def format_outcomes(outcomes: list[str]) -> str:
    return "\n".join(f"- {o}" for o in outcomes) or "- (none listed)"
