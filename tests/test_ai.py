"""AI endpoints against a mocked OpenRouter API."""

import json
from unittest.mock import patch, MagicMock

import pytest
import requests

from getmeachai.modules.ai.client import OpenRouterClient, AIServiceError, extract_json
from getmeachai.modules.campaigns.models import get_campaign
from conftest import signup, create_campaign

POST = "getmeachai.modules.ai.client.requests.post"


def _completion(content, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = {"choices": [{"message": {"content": content}}]}
    response.text = json.dumps(response.json.return_value)
    return response


def _stream(*deltas):
    lines = [f"data: {json.dumps({'choices': [{'delta': {'content': d}}]})}" for d in deltas]
    lines += ["", ": keep-alive", "data: not-json", "data: [DONE]"]
    response = MagicMock()
    response.status_code = 200
    response.iter_lines.return_value = iter(lines)
    return response


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

def test_extract_json():
    assert extract_json('Sure! {"a": 1} hope that helps') == {"a": 1}
    assert extract_json('```json\n[1, 2]\n```', array=True) == [1, 2]
    assert extract_json("no json here") is None
    assert extract_json("{broken") is None
    assert extract_json("") is None


def test_generate_sends_openrouter_request(app):
    with app.app_context(), patch(POST, return_value=_completion("Hello creator")) as mocked:
        client = OpenRouterClient()
        assert client.generate("Say hi", temperature=0.2, max_tokens=50) == "Hello creator"

    args, kwargs = mocked.call_args
    assert args[0].endswith("/chat/completions")
    assert kwargs["headers"]["Authorization"] == "Bearer or-test-key"
    assert kwargs["json"]["messages"][0]["role"] == "system"
    assert kwargs["json"]["messages"][1] == {"role": "user", "content": "Say hi"}
    assert kwargs["json"]["max_tokens"] == 50


@pytest.mark.parametrize("status_code,expected", [(401, 502), (429, 429), (500, 503), (503, 503), (400, 502)])
def test_upstream_errors_are_mapped(app, status_code, expected):
    with app.app_context(), patch(POST, return_value=_completion("", status_code=status_code)):
        with pytest.raises(AIServiceError) as exc:
            OpenRouterClient().generate("Say hi")
    assert exc.value.status_code == expected


def test_timeout_and_missing_key(app):
    with app.app_context():
        with patch(POST, side_effect=requests.exceptions.Timeout()):
            with pytest.raises(AIServiceError) as exc:
                OpenRouterClient().generate("Say hi")
        assert exc.value.status_code == 504

        with pytest.raises(AIServiceError) as exc:
            OpenRouterClient(api_key="").generate("Say hi")
        assert exc.value.status_code == 500


def test_empty_choice_is_invalid(app):
    response = _completion("")
    response.json.return_value = {"choices": []}
    with app.app_context(), patch(POST, return_value=response):
        with pytest.raises(AIServiceError) as exc:
            OpenRouterClient().generate("Say hi")
    assert exc.value.status_code == 502


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

def test_generate_campaign_streams_text(client):
    with patch(POST, return_value=_stream("Once upon ", "a chai.")):
        response = client.post("/api/ai/generate-campaign", json={
            "category": "art", "brief": "A mural of chai stalls across the city", "goal": 50000,
        })
        body = response.get_data(as_text=True)
    assert response.status_code == 200
    assert response.mimetype == "text/plain"
    assert body == "Once upon a chai."


def test_generate_campaign_validation(client):
    assert client.post("/api/ai/generate-campaign", json={"category": "art", "goal": 100}).status_code == 400
    response = client.post("/api/ai/generate-campaign", json={"category": "art", "brief": "short", "goal": 100})
    assert response.status_code == 400


def test_generate_campaign_upstream_error(client):
    with patch(POST, return_value=_completion("", status_code=401)):
        response = client.post("/api/ai/generate-campaign", json={
            "category": "art", "brief": "A mural of chai stalls across the city", "goal": 50000,
        })
    assert response.status_code == 502
    assert response.get_json()["error"] == "Invalid API key"


def test_suggest_goal_is_clamped(client):
    reply = 'Here you go: {"suggestedGoal": 50, "reasoning": "Small start"}'
    with patch(POST, return_value=_completion(reply)):
        response = client.post("/api/ai/suggest-goal", json={"category": "tech", "brief": "A chai robot"})
    assert response.status_code == 200
    assert response.get_json()["suggestion"]["suggestedGoal"] == 1000


def test_suggest_goal_unparseable(client):
    with patch(POST, return_value=_completion("I think about 5000 rupees")):
        response = client.post("/api/ai/suggest-goal", json={"category": "tech", "brief": "A chai robot"})
    assert response.status_code == 502
    assert response.get_json()["error"] == "Invalid response format"


@pytest.mark.parametrize("path,payload,key", [
    ("/api/ai/generate-milestones", {"goal": 10000, "category": "music", "duration": 45}, "milestones"),
    ("/api/ai/generate-rewards", {"goal": 10000, "category": "music"}, "rewards"),
    ("/api/ai/generate-faqs", {"goal": 10000, "category": "music", "story": "An album"}, "faqs"),
])
def test_structured_generators(client, path, payload, key):
    reply = '[{"title": "First"}, {"title": "Second"}]'
    with patch(POST, return_value=_completion(reply)):
        response = client.post(path, json=payload)
    assert response.status_code == 200
    assert [item["title"] for item in response.get_json()[key]] == ["First", "Second"]

    with patch(POST, return_value=_completion("nothing useful")):
        assert client.post(path, json=payload).status_code == 502

    assert client.post(path, json={}).status_code == 400


def test_score_campaign_saves_for_owner(app, client, campaign):
    reply = '{"overallScore": 140, "scores": {"story": 80}, "suggestions": ["Add photos"]}'
    with patch(POST, return_value=_completion(reply)):
        response = client.post("/api/ai/score-campaign", json={"campaignId": campaign["id"]})
    body = response.get_json()
    assert body["score"]["overallScore"] == 100
    assert body["saved"] is True

    with app.app_context():
        assert get_campaign(campaign["id"], auto_complete=False)["quality_score"] == 100


def test_score_campaign_draft(client):
    reply = '{"overallScore": 61}'
    with patch(POST, return_value=_completion(reply)):
        response = client.post("/api/ai/score-campaign", json={"campaign": {"title": "Draft", "story": "..."}})
    assert response.get_json()["saved"] is False
    assert client.post("/api/ai/score-campaign", json={}).status_code == 400
    assert client.post("/api/ai/score-campaign", json={"campaignId": 9999}).status_code == 404


def test_chat(client):
    with patch(POST, return_value=_completion("Start with a clear goal.")) as mocked:
        response = client.post("/api/ai/chat", json={
            "messages": [{"role": "user", "content": "How do I start?"}],
            "userContext": {"name": "Asha"},
        })
    assert response.get_json() == {"success": True, "message": "Start with a clear goal."}
    sent = mocked.call_args.kwargs["json"]["messages"]
    assert sent[0]["role"] == "system"
    assert sent[-1]["content"] == "How do I start?"

    assert client.post("/api/ai/chat", json={"messages": []}).status_code == 400
    bad_role = client.post("/api/ai/chat", json={"messages": [{"role": "system", "content": "x"}]})
    assert bad_role.status_code == 400


def test_chat_can_be_disabled(app, client):
    app.config["FEATURE_AI_CHATBOT"] = False
    response = client.post("/api/ai/chat", json={"messages": [{"role": "user", "content": "Hi"}]})
    assert response.status_code == 404


def test_recommendations(client, other_client, creator):
    art = create_campaign(client, title="Chai Murals", category="art")
    music = create_campaign(client, title="Chai Beats", category="music")

    assert other_client.post("/api/ai/recommendations", json={}).status_code == 401
    signup(other_client, name="Fan", email="fan@example.com")
    other_client.post("/api/campaigns/track-view", json={"campaignId": art["id"]})

    reply = json.dumps([{"id": music["id"], "score": 88, "reason": "You like art, try music"},
                        {"id": art["id"], "score": 50}])
    with patch(POST, return_value=_completion(reply)):
        body = other_client.post("/api/ai/recommendations", json={}).get_json()
    assert body["source"] == "ai"
    # Already-viewed campaigns are not candidates
    assert [c["id"] for c in body["recommendations"]] == [music["id"]]
    assert body["recommendations"][0]["matchScore"] == 88


def test_recommendations_fallback(client, other_client, creator):
    create_campaign(client, title="Chai Murals", category="art")
    music = create_campaign(client, title="Chai Beats", category="music")
    signup(other_client, name="Fan", email="fan@example.com")

    with patch(POST, return_value=_completion("I cannot rank these")):
        body = other_client.post("/api/ai/recommendations", json={"interests": ["music"]}).get_json()
    assert body["source"] == "fallback"
    assert body["recommendations"][0]["id"] == music["id"]
    assert body["recommendations"][0]["matchScore"] == 100


def test_score_campaign_hides_other_creators_drafts(client, other_client, creator):
    draft = client.post("/api/campaigns/draft", json={"title": "Secret plan"}).get_json()["campaign"]
    signup(other_client, name="Nosy Neighbour", email="nosy@example.com")
    with patch(POST) as mocked:
        response = other_client.post("/api/ai/score-campaign", json={"campaignId": draft["id"]})
    assert response.status_code == 404
    mocked.assert_not_called()
