"""
AI dictionary lookups for the vocabulary notebook.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from core.exceptions import AIServiceException
from core.logging import get_logger
from schemas.vocabulary import WordDefinition, WordMeaning
from services.ai_manager import AIManager
from services.practice_service import LANGUAGE_NAMES

logger = get_logger("dictionary")

MAX_MEANINGS = 5


class DefinitionDraft(BaseModel):
    phonetic: Optional[str] = None
    meanings: List[WordMeaning] = Field(default_factory=list)


class DictionaryService:
    """Looks words up with Gemini and returns them as dictionary entries."""

    def __init__(self, ai_manager: Optional[AIManager] = None):
        self.ai_manager = ai_manager or AIManager()

    def _get_definition_prompt(self, word: str, context: Optional[str], language: str) -> str:
        prompt = f"""Give a learner's dictionary entry for the English word "{word}".

**Requirements:**
- IPA pronunciation in the phonetic field
- At most {MAX_MEANINGS} meanings, the ones most common in business English first
- Each meaning has a part of speech, a definition written in {language}, and an English example sentence"""
        if context:
            prompt += f"\n- The learner met the word in this sentence, so put that meaning first: {context}"
        return prompt

    async def lookup(self, word: str, context: Optional[str] = None, language: str = "en") -> WordDefinition:
        word = word.strip().lower()
        draft = await self.ai_manager.generate_content_with_gemini(
            prompt=self._get_definition_prompt(word, context, LANGUAGE_NAMES.get(language, "English")),
            response_schema=DefinitionDraft,
            system_instruction="You are a concise English dictionary for TOEIC learners.",
            temperature=0.2,
        )

        meanings = [m for m in draft.meanings if m.definition.strip()][:MAX_MEANINGS]
        if not meanings:
            raise AIServiceException(detail=f"AI returned no definition for '{word}'", provider="Google")

        logger.info("Definition looked up", word=word, meanings=len(meanings))
        return WordDefinition(
            word=word,
            phonetic=draft.phonetic,
            part_of_speech=meanings[0].part_of_speech,
            definition=meanings[0].definition,
            meanings=meanings,
        )


def get_dictionary_service() -> DictionaryService:
    """Dependency provider; overridden in tests."""
    return DictionaryService()
