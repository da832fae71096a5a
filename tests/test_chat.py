"""Tests for the Chat and Lead API endpoints."""

QUOTE_MESSAGE = "I need car insurance. I'm 41, my car is worth GH₵ 400,000, I live in Accra, comprehensive"


def _chat(client, message, user_id="web-session-1", **extra):
    resp = client.post("/api/v1/chat", json={"message": message, "user_id": user_id, **extra})
    assert resp.status_code == 200
    return resp.json()


def test_root_endpoint(client):
    resp = client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["service"] == "Ghana Insurance Assist"
    assert data["status"] == "operational"
    assert "version" in data


def test_health_endpoint(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["services"]["orchestrator"] is True
    assert data["services"]["llm"] is False
    assert data["services"]["whatsapp"] is False


# ── Chat ──────────────────────────────────────────────

def test_chat_greeting(client):
    data = _chat(client, "Hello")
    assert data["kind"] == "generic"
    assert data["user_id"] == "web-session-1"
    assert data["next_state"] == "discovery"
    assert data["lead_id"] is None
    assert data["delivery"]["success"] is True
    assert isinstance(data["processing_time_ms"], (int, float))


def test_chat_quote(client):
    data = _chat(client, QUOTE_MESSAGE)
    assert data["kind"] == "quote"
    assert data["payload"]["quote"]["annual_premium"] == 14400
    assert data["payload"]["quote"]["monthly_premium"] == 1200
    assert "GH₵ 14,400" in data["message"]


def test_chat_clarification(client):
    data = _chat(client, "How much is life insurance?")
    assert data["kind"] == "clarification"
    assert data["payload"]["missing_fields"] == ["age", "coverage_amount"]
    assert data["next_state"] == "collecting_parameters"


def test_chat_follow_up_and_apply(client):
    _chat(client, QUOTE_MESSAGE)
    follow_up = _chat(client, "what about third party?")
    assert follow_up["kind"] == "follow_up"
    assert follow_up["payload"]["quote"]["annual_premium"] == 4320

    applied = _chat(client, "I want to apply", context_hints={"source": "web", "name": "Akosua"})
    assert applied["payload"]["action"] == "apply"
    assert applied["lead_id"] is not None

    lead = client.get(f"/api/v1/leads/{applied['lead_id']}").json()
    assert lead["score"] == 90
    assert lead["name"] == "Akosua"
    assert lead["interests"] == ["auto"]


def test_chat_validation(client):
    resp = client.post("/api/v1/chat", json={"message": "", "user_id": "u1"})
    assert resp.status_code == 422

    resp = client.post("/api/v1/chat", json={"message": "hi"})
    assert resp.status_code == 422


def test_users_are_isolated(client):
    _chat(client, QUOTE_MESSAGE, user_id="233244000001")
    data = _chat(client, "how much is third party instead", user_id="233244000002")
    assert data["kind"] == "clarification"


# ── History ───────────────────────────────────────────

def test_history(client):
    _chat(client, "Hi", user_id="hist-1")
    _chat(client, QUOTE_MESSAGE, user_id="hist-1")

    resp = client.get("/api/v1/chat/hist-1/history")
    assert resp.status_code == 200
    data = resp.json()
    assert data["turn_count"] == 2
    assert len(data["messages"]) == 4
    assert data["messages"][0]["role"] == "user"
    assert data["messages"][0]["content"] == "Hi"
    assert data["state"] == "calculated"
    assert data["profile"]["age"] == 41


def test_history_not_found(client):
    resp = client.get("/api/v1/chat/nobody/history")
    assert resp.status_code == 404


def test_clear_conversation(client):
    _chat(client, "Hi", user_id="clear-1")
    resp = client.delete("/api/v1/chat/clear-1")
    assert resp.status_code == 200
    assert client.get("/api/v1/chat/clear-1/history").status_code == 404


def test_chat_stats(client):
    _chat(client, "Hi", user_id="a")
    _chat(client, "Hello", user_id="b")
    data = client.get("/api/v1/chat/stats").json()
    assert data["total_conversations"] == 2
    assert data["total_messages"] == 4


# ── Leads ─────────────────────────────────────────────

def test_create_and_get_lead(client):
    resp = client.post("/api/v1/leads", json={
        "name": "Yaw Boateng",
        "email": "yaw@example.com",
        "phone": "+233501234567",
        "interests": ["health"],
    })
    assert resp.status_code == 200
    lead = resp.json()
    assert lead["source"] == "web_form"
    assert lead["status"] == "new"
    # 20 + 25 + 15 + 20 + medium 10 + web_form 12, capped
    assert lead["score"] == 100

    fetched = client.get(f"/api/v1/leads/{lead['lead_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["email"] == "yaw@example.com"


def test_lead_not_found(client):
    assert client.get("/api/v1/leads/lead_missing").status_code == 404
    assert client.patch("/api/v1/leads/lead_missing", json={"status": "lost"}).status_code == 404


def test_update_lead(client):
    lead = client.post("/api/v1/leads", json={"email": "esi@example.com"}).json()

    resp = client.patch(f"/api/v1/leads/{lead['lead_id']}", json={"status": "contacted"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "contacted"
    assert resp.json()["email"] == "esi@example.com"

    resp = client.patch(f"/api/v1/leads/{lead['lead_id']}", json={"score": 150})
    assert resp.status_code == 422


def test_list_leads(client):
    client.post("/api/v1/leads", json={"email": "a@example.com", "source": "referral"})
    client.post("/api/v1/leads", json={"email": "b@example.com"})

    data = client.get("/api/v1/leads", params={"source": "referral"}).json()
    assert data["total"] == 1
    assert data["leads"][0]["email"] == "a@example.com"

    data = client.get("/api/v1/leads", params={"page_size": 1}).json()
    assert data["total"] == 2
    assert len(data["leads"]) == 1
    assert data["has_next"] is True


def test_lead_stats(client):
    client.post("/api/v1/leads", json={"email": "a@example.com"})
    data = client.get("/api/v1/leads/stats/summary").json()
    assert data["total"] == 1
    assert data["by_status"]["new"] == 1
    # email 20 + medium 10 + web_form 12
    assert data["average_score"] == 42.0
