"""Prompt text for the completion API.

Pure string builders; nothing here touches the network or database.
"""

from typing import Optional

OPTION_LABELS = ("A", "B", "C", "D")

QUIZ_SYSTEM_PROMPT = (
    "You are an expert BAC exam question generator. Always return valid JSON only."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert BAC exam tutor who creates excellent study summaries "
    "and guides for students."
)


def build_quiz_prompt(subject_name: str, chapter: str, difficulty: str, count: int) -> str:
    """Ask for exactly `count` four-option questions as a single JSON object."""
    return f"""Generate exactly {count} BAC-style multiple choice questions for the subject "{subject_name}" on the chapter "{chapter}" with {difficulty} difficulty level.

Instructions:
- Focus on BAC exam style questions (Moroccan Baccalaureate)
- Each question must have exactly 4 options labelled A, B, C and D
- Give the label of the single correct option in "correct_answer"
- Include a detailed explanation for the correct answer
- Ensure questions test understanding, not just memorization
- Use appropriate academic language in French or Arabic when relevant

Return ONLY a valid JSON object, with no text before or after it, using this exact structure:
{{
  "questions": [
    {{
      "question": "Question text here",
      "options": ["A) Option 1", "B) Option 2", "C) Option 3", "D) Option 4"],
      "correct_answer": "A",
      "explanation": "Detailed explanation of why this is correct"
    }}
  ]
}}"""


def build_summary_prompt(subject_name: str, chapter: str, specific_topic: Optional[str] = None) -> str:
    topic_info = f' focusing specifically on "{specific_topic}"' if specific_topic else ""
    return f"""Create a comprehensive study summary for BAC students studying "{subject_name}" on the chapter "{chapter}"{topic_info}.

Instructions:
- Write in clear, academic language appropriate for BAC level
- Include key concepts, definitions, and important formulas/theories
- Provide study tips and exam strategies
- Add memory aids and mnemonics where helpful
- Structure with clear headings and bullet points
- Focus on what's most likely to appear in BAC exams
- Keep it concise but thorough (800-1200 words)

Format the response as a well-structured study guide that students can use for revision."""
