"""
API tests for AI practice generation and tutoring chat, with the AI faked out.
"""
import pytest

from app import app
from core.exceptions import AIServiceException
from schemas.practice import GeneratedQuestion, QuestionGenerationRequest
from services.practice_service import (
    QuestionDraft, QuestionDraftBatch, QuestionGeneratorService, get_chat_service, get_question_generator
)

GENERATE = {"type": "READING_PART5", "difficulty": "LEVEL_600_700", "count": 2}


class FakeGenerator:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    async def generate_questions(self, request):
        self.calls += 1
        if self.fail:
            raise AIServiceException(detail="Gemini unavailable", provider="Google")
        return [
            GeneratedQuestion(
                id=f"q{i}",
                type=request.type,
                difficulty=request.difficulty.value,
                question="The report must be submitted ___ Friday.",
                options=["by", "until", "at", "on"],
                correct_answer=0,
                explanation="'By' marks a deadline.",
            )
            for i in range(request.count)
        ]


class FakeChat:
    async def explain(self, request):
        return f"Explanation for: {request.message}"


@pytest.fixture
def fake_ai(client):
    generator = FakeGenerator()
    app.dependency_overrides[get_question_generator] = lambda: generator
    app.dependency_overrides[get_chat_service] = lambda: FakeChat()
    return generator


async def practice_used(client, headers):
    response = await client.get("/billing/user/usage/check/daily_practice", headers=headers)
    return response.json()["used"]


async def test_free_user_is_refused(client, fake_ai, register_user):
    _, headers = await register_user()
    response = await client.post("/practice/generate", json=GENERATE, headers=headers)

    assert response.status_code == 403
    error = response.json()["error"]
    assert error["error_code"] == "SUBSCRIPTION_REQUIRED"
    assert error["data"]["trial_available"] is True
    assert fake_ai.calls == 0


async def test_expired_trial_is_reported(client, clock, fake_ai, register_user):
    _, headers = await register_user()
    await client.post("/billing/user/subscription/start-trial", headers=headers)
    clock.advance(days=4)

    response = await client.post("/practice/generate", json=GENERATE, headers=headers)
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["error_code"] == "TRIAL_EXPIRED"
    assert error["data"]["trial_available"] is False


async def test_trial_user_generates_and_is_counted(client, fake_ai, register_user):
    _, headers = await register_user()
    await client.post("/billing/user/subscription/start-trial", headers=headers)

    response = await client.post("/practice/generate", json=GENERATE, headers=headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert len(body["questions"]) == 2
    assert body["session_id"]
    assert await practice_used(client, headers) == 1


async def test_failed_generation_is_not_counted(client, register_user):
    app.dependency_overrides[get_question_generator] = lambda: FakeGenerator(fail=True)
    _, headers = await register_user()
    await client.post("/billing/user/subscription/start-trial", headers=headers)

    response = await client.post("/practice/generate", json=GENERATE, headers=headers)
    assert response.status_code == 503
    assert response.json()["error"]["error_code"] == "AI_SERVICE_ERROR"
    assert await practice_used(client, headers) == 0


async def test_daily_practice_limit(client, clock, fake_ai, register_user):
    user_id, headers = await register_user()
    _, admin = await register_user("admin", admin=True)
    await client.put("/admin/plans/lite", json={"name": "Lite", "ai_practice": True, "daily_practice_limit": 1},
                     headers=admin)
    await client.put(f"/admin/users/{user_id}/subscription", json={"plan_id": "lite"}, headers=admin)

    response = await client.post("/practice/generate", json=GENERATE, headers=headers)
    assert response.status_code == 200

    response = await client.post("/practice/generate", json=GENERATE, headers=headers)
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["error_code"] == "USAGE_LIMIT_EXCEEDED"
    assert error["data"]["limit"] == 1
    assert error["data"]["remaining"] == 0
    assert fake_ai.calls == 1

    clock.advance(days=1)
    response = await client.post("/practice/generate", json=GENERATE, headers=headers)
    assert response.status_code == 200


async def test_request_validation(client, fake_ai, register_user):
    _, headers = await register_user()
    await client.post("/billing/user/subscription/start-trial", headers=headers)

    response = await client.post("/practice/generate", json={**GENERATE, "count": 21}, headers=headers)
    assert response.status_code == 422

    response = await client.post("/practice/generate",
                                 json={**GENERATE, "custom_prompt": "<script>alert(1)</script>"},
                                 headers=headers)
    assert response.status_code == 422
    assert fake_ai.calls == 0


async def test_trial_chat_counts_down(client, fake_ai, register_user):
    _, headers = await register_user()
    await client.post("/billing/user/subscription/start-trial", headers=headers)

    response = await client.post("/chat/explain", json={"message": "Why 'by'?"}, headers=headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["reply"] == "Explanation for: Why 'by'?"
    assert body["remaining"] == 19

    for _ in range(19):
        response = await client.post("/chat/explain", json={"message": "again"}, headers=headers)
        assert response.status_code == 200
    assert response.json()["remaining"] == 0

    response = await client.post("/chat/explain", json={"message": "one more"}, headers=headers)
    assert response.status_code == 403
    assert response.json()["error"]["error_code"] == "USAGE_LIMIT_EXCEEDED"


async def test_premium_chat_is_unlimited(client, fake_ai, seeded_plans, register_user):
    user_id, headers = await register_user()
    _, admin = await register_user("admin", admin=True)
    await client.put(f"/admin/users/{user_id}/subscription", json={"plan_id": "premium_monthly"}, headers=admin)

    response = await client.post("/chat/explain", json={"message": "Explain part 5"}, headers=headers)
    assert response.status_code == 200, response.text
    assert response.json()["remaining"] is None


class FakeAIManager:
    def __init__(self, batch):
        self.batch = batch

    async def generate_content_with_gemini(self, **kwargs):
        return self.batch


async def test_generator_drops_invalid_answers():
    batch = QuestionDraftBatch(questions=[
        QuestionDraft(question="Q1", options=["a", "b", "c", "d"], correct_answer=2),
        QuestionDraft(question="Q2", options=["a", "b", "c"], correct_answer=3),
    ])
    service = QuestionGeneratorService(ai_manager=FakeAIManager(batch))
    request = QuestionGenerationRequest(**GENERATE)

    questions = await service.generate_questions(request)
    assert [q.question for q in questions] == ["Q1"]
    assert questions[0].difficulty == "LEVEL_600_700"


async def test_generator_with_no_usable_questions():
    service = QuestionGeneratorService(ai_manager=FakeAIManager(QuestionDraftBatch()))
    with pytest.raises(AIServiceException):
        await service.generate_questions(QuestionGenerationRequest(**GENERATE))
