from typing import Optional

from lib_llm.prompts import tutor

SESSION_FOCUS = {
    "grammar": tutor.grammar_focus,
    "pronunciation": tutor.pronunciation_focus,
    "vocabulary": tutor.vocabulary_focus,
}


class PromptGenerator:
    def __init__(self, level: str = "A1", session_type: str = "conversation", topic: Optional[str] = None):
        self.level = level
        self.session_type = session_type
        self.topic = topic or session_type
        self.prompt = self.serialize_prompt()

    def serialize_prompt(self) -> str:
        prompt = tutor.prompt.format(
            level=self.level,
            session_type=self.session_type,
            topic=self.topic,
        ).strip()
        focus = SESSION_FOCUS.get(self.session_type)
        if focus:
            prompt += "\n" + focus
        return prompt

    def __repr__(self):
        return self.prompt
