"""
API tests for the vocabulary notebook and reviews.
"""
import csv
import io
from datetime import datetime, timedelta, timezone

from core.clock import ensure_aware


def parse_dt(value: str) -> datetime:
    return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))


async def add_word(client, headers, word, **extra):
    response = await client.post("/vocabulary/", json={"word": word, **extra}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def test_add_word_normalises_and_schedules_now(client, clock, register_user):
    _, headers = await register_user()
    item = await add_word(client, headers, "  Invoice ", definition="a bill", context="Please pay the invoice.")

    assert item["word"] == "invoice"
    assert item["ease_factor"] == 2.5
    assert item["interval"] == 1
    assert item["review_count"] == 0
    assert item["mastered"] is False
    assert item["notes"] == ""
    assert parse_dt(item["next_review_date"]) == clock.now


async def test_duplicate_word_is_rejected(client, register_user):
    _, headers = await register_user()
    await add_word(client, headers, "agenda")

    response = await client.post("/vocabulary/", json={"word": "AGENDA"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["error_code"] == "DUPLICATE"


async def test_same_word_for_different_users(client, register_user):
    _, first = await register_user("first")
    _, second = await register_user("second")
    await add_word(client, first, "deadline")
    await add_word(client, second, "deadline")


async def test_requires_authentication(client):
    response = await client.get("/vocabulary/")
    assert response.status_code == 401
    assert response.json()["error"]["error_code"] == "UNAUTHORIZED"


async def test_list_pagination_and_sorting(client, register_user):
    _, headers = await register_user()
    for word in ("merger", "acquisition", "budget"):
        await add_word(client, headers, word)

    response = await client.get("/vocabulary/", params={"sort_by": "word", "sort_order": "asc", "limit": 2},
                                headers=headers)
    body = response.json()
    assert response.status_code == 200
    assert body["total"] == 3
    assert body["pages"] == 2
    assert [i["word"] for i in body["items"]] == ["acquisition", "budget"]

    response = await client.get("/vocabulary/", params={"sort_by": "word", "sort_order": "asc", "limit": 2,
                                                        "page": 2}, headers=headers)
    assert [i["word"] for i in response.json()["items"]] == ["merger"]


async def test_review_cycle(client, clock, register_user):
    _, headers = await register_user()
    item = await add_word(client, headers, "quarterly")

    due = (await client.get("/vocabulary/review", headers=headers)).json()
    assert [i["id"] for i in due] == [item["id"]]

    response = await client.post(f"/vocabulary/{item['id']}/review",
                                 json={"correct": True, "difficulty": 5}, headers=headers)
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["interval"] == 1
    assert abs(result["ease_factor"] - 2.6) < 1e-9
    assert parse_dt(result["next_review_date"]) == clock.now + timedelta(days=1)
    assert result["item"]["review_count"] == 1
    assert result["item"]["correct_count"] == 1

    assert (await client.get("/vocabulary/review", headers=headers)).json() == []

    clock.advance(days=1)
    response = await client.post(f"/vocabulary/{item['id']}/review",
                                 json={"correct": True, "difficulty": 4}, headers=headers)
    assert response.json()["interval"] == 6

    response = await client.post(f"/vocabulary/{item['id']}/review",
                                 json={"correct": False}, headers=headers)
    result = response.json()
    assert result["interval"] == 1
    assert result["item"]["incorrect_count"] == 1
    assert result["item"]["review_count"] == 3


async def test_review_validation(client, register_user):
    _, headers = await register_user()
    item = await add_word(client, headers, "logistics")

    for payload in ({"correct": True}, {"correct": True, "difficulty": 0}, {"correct": True, "difficulty": 6}):
        response = await client.post(f"/vocabulary/{item['id']}/review", json=payload, headers=headers)
        assert response.status_code == 422, payload
        assert response.json()["error"]["error_code"] == "VALIDATION_ERROR"

    # Nothing was recorded
    listing = (await client.get("/vocabulary/", headers=headers)).json()
    assert listing["items"][0]["review_count"] == 0


async def test_mastered_words_can_be_left_out_of_reviews(client, register_user):
    _, headers = await register_user()
    item = await add_word(client, headers, "shipment")
    await add_word(client, headers, "warehouse")

    response = await client.put(f"/vocabulary/{item['id']}", json={"mastered": True, "notes": "easy"},
                                headers=headers)
    assert response.status_code == 200
    assert response.json()["notes"] == "easy"

    everything = (await client.get("/vocabulary/review", headers=headers)).json()
    assert len(everything) == 2
    unmastered = (await client.get("/vocabulary/review", params={"include_mastered": "false"},
                                   headers=headers)).json()
    assert [i["word"] for i in unmastered] == ["warehouse"]


async def test_stats(client, clock, register_user):
    _, headers = await register_user()
    first = await add_word(client, headers, "revenue")
    second = await add_word(client, headers, "expense")
    await client.put(f"/vocabulary/{second['id']}", json={"mastered": True}, headers=headers)
    await client.post(f"/vocabulary/{first['id']}/review", json={"correct": True, "difficulty": 3},
                      headers=headers)

    stats = (await client.get("/vocabulary/stats", headers=headers)).json()
    assert stats == {
        "total_words": 2,
        "mastered_words": 1,
        "recent_words": 2,
        "words_needing_review": 0,
        "reviewed_today": 1,
    }

    clock.advance(days=8)
    stats = (await client.get("/vocabulary/stats", headers=headers)).json()
    assert stats["recent_words"] == 0
    assert stats["reviewed_today"] == 0
    assert stats["words_needing_review"] == 1


async def test_delete_and_ownership(client, register_user):
    _, owner = await register_user("owner")
    _, stranger = await register_user("stranger")
    item = await add_word(client, owner, "contract")

    response = await client.put(f"/vocabulary/{item['id']}", json={"notes": "mine"}, headers=stranger)
    assert response.status_code == 404
    response = await client.delete(f"/vocabulary/{item['id']}", headers=stranger)
    assert response.status_code == 404

    response = await client.delete(f"/vocabulary/{item['id']}", headers=owner)
    assert response.status_code == 204
    response = await client.post(f"/vocabulary/{item['id']}/review", json={"correct": False}, headers=owner)
    assert response.status_code == 404


async def test_export_requires_premium(client, register_user):
    _, headers = await register_user()
    await add_word(client, headers, "audit")

    response = await client.get("/vocabulary/export", headers=headers)
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["error_code"] == "SUBSCRIPTION_REQUIRED"
    assert error["data"]["trial_available"] is True
    assert error["data"]["upgrade_url"] == "/pricing"

    response = await client.post("/billing/user/subscription/start-trial", headers=headers)
    assert response.status_code == 200, response.text

    response = await client.get("/vocabulary/export", headers=headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert [r["word"] for r in rows] == ["audit"]


async def test_word_cap_from_plan(client, register_user):
    user_id, headers = await register_user()
    _, admin = await register_user("admin", admin=True)

    response = await client.put("/admin/plans/starter", json={"name": "Starter", "max_vocabulary_words": 2},
                                headers=admin)
    assert response.status_code == 200, response.text
    await add_word(client, headers, "payroll")
    response = await client.put(f"/admin/users/{user_id}/subscription", json={"plan_id": "starter"},
                                headers=admin)
    assert response.status_code == 200, response.text

    await add_word(client, headers, "pension")
    response = await client.post("/vocabulary/", json={"word": "bonus"}, headers=headers)
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["error_code"] == "USAGE_LIMIT_EXCEEDED"
    assert error["data"]["limit"] == 2
    assert error["data"]["used"] == 2


async def test_upgrade_lifts_word_cap(client, seeded_plans, register_user):
    user_id, headers = await register_user()
    _, admin = await register_user("admin", admin=True)

    await client.put("/admin/plans/starter", json={"name": "Starter", "max_vocabulary_words": 1}, headers=admin)
    await client.put(f"/admin/users/{user_id}/subscription", json={"plan_id": "starter"}, headers=admin)
    await add_word(client, headers, "payroll")
    response = await client.post("/vocabulary/", json={"word": "bonus"}, headers=headers)
    assert response.status_code == 403

    response = await client.put(f"/admin/users/{user_id}/subscription", json={"plan_id": "premium_monthly"},
                                headers=admin)
    assert response.status_code == 200, response.text
    await add_word(client, headers, "bonus")

    usage = (await client.get("/billing/user/usage/check/vocabulary_words", headers=headers)).json()
    assert usage["can_use"] is True
    assert usage["limit"] is None
