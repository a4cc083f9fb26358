"""
AI-backed TOEIC question generation and tutoring chat.
"""
import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from core.exceptions import AIServiceException
from core.logging import get_logger
from schemas.practice import (
    ChatRequest, GeneratedQuestion, QuestionGenerationRequest, QuestionTypeEnum
)
from services.ai_manager import AIManager

logger = get_logger("practice")

PART_DESCRIPTIONS = {
    QuestionTypeEnum.LISTENING_PART1: "Part 1 photograph description (describe the scene in the passage field)",
    QuestionTypeEnum.LISTENING_PART2: "Part 2 question-response (3 options)",
    QuestionTypeEnum.LISTENING_PART3: "Part 3 short conversation (transcript in the passage field)",
    QuestionTypeEnum.LISTENING_PART4: "Part 4 short talk (transcript in the passage field)",
    QuestionTypeEnum.READING_PART5: "Part 5 incomplete sentence",
    QuestionTypeEnum.READING_PART6: "Part 6 text completion (text in the passage field)",
    QuestionTypeEnum.READING_PART7: "Part 7 reading comprehension (passage in the passage field)",
}

LANGUAGE_NAMES = {"en": "English", "zh": "Chinese", "ja": "Japanese"}


class QuestionDraft(BaseModel):
    question: str
    options: List[str]
    correct_answer: int
    explanation: str = ""
    passage: Optional[str] = None
    category: Optional[str] = None


class QuestionDraftBatch(BaseModel):
    questions: List[QuestionDraft] = Field(default_factory=list)


class QuestionGeneratorService:
    """Turns a generation request into validated TOEIC questions."""

    def __init__(self, ai_manager: Optional[AIManager] = None):
        self.ai_manager = ai_manager or AIManager()

    def _get_generation_prompt(self, request: QuestionGenerationRequest) -> str:
        language = LANGUAGE_NAMES[request.language.value]
        prompt = f"""Generate EXACTLY {request.count} TOEIC {PART_DESCRIPTIONS[request.type]} questions.

**Requirements:**
- Target level: {request.difficulty.value}
- Each question has 4 options (3 for Part 2), with correct_answer as the 0-based option index
- Write the explanation in {language}"""
        if request.topic:
            prompt += f"\n- Business topic: {request.topic}"
        if request.custom_prompt:
            prompt += f"\n\n**Additional Instructions:**\n{request.custom_prompt}"
        return prompt

    async def generate_questions(self, request: QuestionGenerationRequest) -> List[GeneratedQuestion]:
        logger.info("Question generation started", type=request.type.value,
                    difficulty=request.difficulty.value, count=request.count)

        batch = await self.ai_manager.generate_content_with_gemini(
            prompt=self._get_generation_prompt(request),
            response_schema=QuestionDraftBatch,
            system_instruction="You are an expert TOEIC test writer.",
        )

        questions = []
        for draft in batch.questions[:request.count]:
            if not 0 <= draft.correct_answer < len(draft.options):
                logger.warning("Dropping generated question with invalid answer index")
                continue
            questions.append(GeneratedQuestion(
                id=str(uuid.uuid4()),
                type=request.type,
                difficulty=request.difficulty.value,
                **draft.model_dump(),
            ))

        if not questions:
            raise AIServiceException(detail="AI returned no usable questions", provider="Google")

        logger.info("Question generation completed", generated=len(questions))
        return questions


class ChatService:
    """Explains questions and answers learner follow-ups."""

    def __init__(self, ai_manager: Optional[AIManager] = None):
        self.ai_manager = ai_manager or AIManager()

    def _get_chat_prompt(self, request: ChatRequest) -> str:
        parts = []
        context = request.question_context
        if context and context.question:
            parts.append(f"Question: {context.question}")
            if context.options:
                parts.extend(f"{chr(65 + i)}. {option}" for i, option in enumerate(context.options))
            if context.correct_answer is not None:
                parts.append(f"Correct answer index: {context.correct_answer}")
            if context.user_answer is not None:
                parts.append(f"Learner's answer index: {context.user_answer}")
        parts.append(f"Learner: {request.message}")
        return "\n".join(parts)

    async def explain(self, request: ChatRequest) -> str:
        language = LANGUAGE_NAMES[request.language.value]
        reply = await self.ai_manager.generate_content_with_gemini(
            prompt=self._get_chat_prompt(request),
            system_instruction=(
                "You are a friendly TOEIC tutor. Explain grammar and vocabulary clearly "
                f"and concisely. Reply in {language}."
            ),
            temperature=0.7,
        )
        return reply.strip()


def get_question_generator() -> QuestionGeneratorService:
    """Dependency provider; overridden in tests."""
    return QuestionGeneratorService()


def get_chat_service() -> ChatService:
    """Dependency provider; overridden in tests."""
    return ChatService()
