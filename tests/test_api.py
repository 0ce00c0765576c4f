"""HTTP tests for the review, plan, stats and learner routes."""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from backend.config import utcnow
from backend.database import get_session
from backend.main import app
from backend.srs.session import submit_review

WORDBOOK = "toefl"


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# --- Health ---


@pytest.mark.asyncio
async def test_health_check(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# --- Reviews ---


@pytest.mark.asyncio
async def test_sm2_review(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    response = await client.post(
        "/api/reviews/sm2",
        json={"learner_id": learner_id, "wordbook_id": WORDBOOK, "word_id": word_ids[0], "choice": "know"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["card"]["algorithm"] == "sm2"
    assert data["card"]["interval"] == 1
    assert data["card"]["easiness_factor"] == pytest.approx(2.6)
    assert data["card"]["stability"] is None
    assert data["card"]["status"] == "learning"
    assert 0 <= data["mastery_level"] <= 100


@pytest.mark.asyncio
async def test_sm2_invalid_choice(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    response = await client.post(
        "/api/reviews/sm2",
        json={"learner_id": learner_id, "wordbook_id": WORDBOOK, "word_id": word_ids[0], "choice": "maybe"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_review_unknown_word(client, wordbook) -> None:
    learner_id, _ = wordbook
    response = await client.post(
        "/api/reviews/sm2",
        json={"learner_id": learner_id, "wordbook_id": WORDBOOK, "word_id": 9999, "choice": "know"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_fsrs_review_and_mismatch(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    response = await client.post(
        "/api/reviews/fsrs",
        json={"learner_id": learner_id, "wordbook_id": WORDBOOK, "word_id": word_ids[1], "rating": 3},
    )
    assert response.status_code == 200
    card = response.json()["card"]
    assert card["algorithm"] == "fsrs"
    assert card["easiness_factor"] is None
    assert card["stability"] > 0

    response = await client.post(
        "/api/reviews/sm2",
        json={"learner_id": learner_id, "wordbook_id": WORDBOOK, "word_id": word_ids[1], "choice": "know"},
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_fsrs_rating_out_of_range(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    response = await client.post(
        "/api/reviews/fsrs",
        json={"learner_id": learner_id, "wordbook_id": WORDBOOK, "word_id": word_ids[1], "rating": 5},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_sm2_batch(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    response = await client.post(
        "/api/reviews/sm2/batch",
        json={
            "learner_id": learner_id,
            "wordbook_id": WORDBOOK,
            "answers": [
                {"word_id": word_ids[0], "choice": "know"},
                {"word_id": 9999, "choice": "know"},
                {"word_id": word_ids[1], "choice": "unknown"},
            ],
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert [item["card"]["word_id"] for item in data] == [word_ids[0], word_ids[1]]
    assert data[1]["card"]["lapses"] == 1


@pytest.mark.asyncio
async def test_fsrs_preview(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    response = await client.get(f"/api/reviews/fsrs/preview/{learner_id}/{WORDBOOK}/{word_ids[2]}")
    assert response.status_code == 200
    data = response.json()
    assert data["difficulty"] == "easy"
    assert data["retrievability"] is None
    assert set(data["suggestions"]) == {"again", "hard", "good", "easy"}
    assert data["suggestions"]["again"]["interval"] == 1


@pytest.mark.asyncio
async def test_due_cards(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    for word_id in word_ids[:3]:
        await client.post(
            "/api/reviews/sm2",
            json={"learner_id": learner_id, "wordbook_id": WORDBOOK, "word_id": word_id, "choice": "know"},
        )

    # Answered just now, so nothing is due until tomorrow
    response = await client.get(f"/api/reviews/due/{learner_id}/{WORDBOOK}")
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_due_cards_ordered_and_limited(client, wordbook, db) -> None:
    learner_id, word_ids = wordbook
    scheduled = [(word_ids[0], -2), (word_ids[1], -5), (word_ids[2], -1)]
    for word_id, days in scheduled:
        await submit_review(
            db, learner_id, WORDBOOK, word_id, "know", "sm2", now=utcnow() + timedelta(days=days - 1)
        )

    response = await client.get(f"/api/reviews/due/{learner_id}/{WORDBOOK}", params={"limit": 2})
    assert response.status_code == 200
    data = response.json()
    assert [card["word_id"] for card in data] == [word_ids[1], word_ids[0]]
    assert all(card["algorithm"] == "sm2" for card in data)

    response = await client.get(f"/api/reviews/due/{learner_id}/{WORDBOOK}", params={"algorithm": "fsrs"})
    assert response.json() == []


# --- Plans ---


@pytest.mark.asyncio
async def test_plan_lifecycle(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    base = f"/api/plans/{learner_id}/{WORDBOOK}"

    response = await client.post(base)
    assert response.status_code == 200
    plan = response.json()
    assert sorted(plan["planned_items"]) == sorted(word_ids)
    assert plan["total_count"] == 5
    assert plan["completed_count"] == 0

    # Same day, same plan, even with different settings
    again = await client.post(base, json={"preset": "relaxed"})
    assert again.json()["planned_items"] == plan["planned_items"]

    progress = (await client.get(f"{base}/progress")).json()
    assert progress["next_item"] == plan["planned_items"][0]
    assert progress["progress"] == 0.0

    first = plan["planned_items"][0]
    response = await client.post(f"{base}/answer", json={"word_id": first, "known": True, "time_spent": 900})
    assert response.status_code == 200
    answered = response.json()
    assert answered["completed_items"] == [first]
    assert answered["current_index"] == 1
    assert answered["stats"]["study_time"] == 900

    for word_id in plan["planned_items"][1:]:
        response = await client.post(f"{base}/answer", json={"word_id": word_id, "known": False})
    final = response.json()
    assert final["is_completed"]
    assert final["stats"]["accuracy"] == pytest.approx(20.0)

    history = (await client.get(f"{base}/history", params={"days": 3})).json()
    assert len(history) == 1
    assert history[0]["is_target_reached"]


@pytest.mark.asyncio
async def test_plan_answer_errors(client, wordbook) -> None:
    learner_id, _ = wordbook
    base = f"/api/plans/{learner_id}/{WORDBOOK}"

    response = await client.post(f"{base}/answer", json={"word_id": 1, "known": True})
    assert response.status_code == 404

    await client.post(base)
    response = await client.post(f"{base}/answer", json={"word_id": 9999, "known": True})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_progress_without_plan(client, wordbook) -> None:
    learner_id, _ = wordbook
    response = await client.get(f"/api/plans/{learner_id}/{WORDBOOK}/progress")
    assert response.status_code == 200
    data = response.json()
    assert data["plan"] is None
    assert data["next_item"] is None
    assert not data["is_completed"]


# --- Stats ---


@pytest.mark.asyncio
async def test_learner_stats(client, wordbook) -> None:
    learner_id, word_ids = wordbook
    for word_id, rating in zip(word_ids[:2], (3, 1)):
        await client.post(
            "/api/reviews/fsrs",
            json={"learner_id": learner_id, "wordbook_id": WORDBOOK, "word_id": word_id, "rating": rating, "time_ms": 1000},
        )

    response = await client.get(f"/api/stats/{learner_id}/{WORDBOOK}")
    assert response.status_code == 200
    data = response.json()
    assert data["total_cards"] == 2
    assert data["total_reviews"] == 2
    assert data["accuracy"] == 50
    assert data["average_time"] == 1000
    assert data["rating_distribution"] == {"again": 1, "hard": 0, "good": 1, "easy": 0}


# --- Learners ---


@pytest.mark.asyncio
async def test_presets(client) -> None:
    response = await client.get("/api/learners/presets")
    assert response.status_code == 200
    data = response.json()
    assert set(data) == {"relaxed", "standard", "intensive"}
    assert data["standard"] == {"daily_new_words": 16, "daily_review_words": 48, "daily_target": 64}


@pytest.mark.asyncio
async def test_budget_get_and_update(client, wordbook) -> None:
    learner_id, _ = wordbook
    url = f"/api/learners/{learner_id}/budget"

    response = await client.put(url, json={"daily_new_words": 80, "daily_review_words": 10})
    assert response.status_code == 200
    assert response.json() == {"daily_new_words": 50, "daily_review_words": 10, "daily_target": 60}
    assert (await client.get(url)).json()["daily_target"] == 60

    response = await client.put(url, json={"preset": "intensive"})
    assert response.json()["daily_target"] == 96

    # The saved budget shapes the next new plan
    plan = (await client.post(f"/api/plans/{learner_id}/{WORDBOOK}")).json()
    assert plan["total_count"] == 5


@pytest.mark.asyncio
async def test_budget_errors(client, wordbook) -> None:
    learner_id, _ = wordbook
    assert (await client.get("/api/learners/9999/budget")).status_code == 404
    response = await client.put("/api/learners/9999/budget", json={"preset": "relaxed"})
    assert response.status_code == 404
    response = await client.put(f"/api/learners/{learner_id}/budget", json={})
    assert response.status_code == 422
    response = await client.put(f"/api/learners/{learner_id}/budget", json={"preset": "extreme"})
    assert response.status_code == 422
