# ─────────────────────────────────────────────────────────────────────────────
# Caption Endpoint Tests — POST /api/openai/responses end to end
# ─────────────────────────────────────────────────────────────────────────────
# TestClient over the full app, upstream replaced by mock_openai. Each gate
# is exercised through HTTP: quota, parsing, text validation, credential,
# moderation, and completion.
# ─────────────────────────────────────────────────────────────────────────────

from unittest.mock import AsyncMock

import httpx
import openai
import pytest
from dirty_equals import IsInt, IsStr
from fastapi.testclient import TestClient

from captioner.config import Settings
from captioner.main import create_app
from captioner.prompts import CAPTION_INSTRUCTIONS, GENERAL_INSTRUCTIONS
from tests.upstream_fakes import (
    IMAGE_URL,
    completion_response,
    image_input,
    moderation_response,
    text_input,
)

ENDPOINT = "/api/openai/responses"


def _post(client: TestClient, body, ip: str = "203.0.113.7"):
    return client.post(ENDPOINT, json=body, headers={"X-Forwarded-For": ip})


class TestSuccessfulRequests:
    def test_caption_success_shape(self, client):
        response = _post(client, {"input": image_input()})
        assert response.status_code == 200
        assert response.json() == {
            "response": "A dog sprints along the shoreline.",
            "originalInput": image_input(),
            "remainingRequests": 2,
        }

    def test_text_only_answer(self, client, mock_openai):
        mock_openai.responses.create.return_value = completion_response("Paris.")
        response = _post(client, {"input": text_input()})

        assert response.status_code == 200
        assert response.json()["response"] == "Paris."
        mock_openai.moderations.create.assert_not_called()
        kwargs = mock_openai.responses.create.await_args.kwargs
        assert kwargs["instructions"] == GENERAL_INSTRUCTIONS

    def test_image_request_uses_caption_instructions(self, client, mock_openai):
        _post(client, {"input": image_input()})
        kwargs = mock_openai.responses.create.await_args.kwargs
        assert kwargs["instructions"] == CAPTION_INSTRUCTIONS
        assert kwargs["model"] == "gpt-4o-mini"

    def test_remaining_counts_down(self, client):
        remaining = [
            _post(client, {"input": image_input()}).json()["remainingRequests"] for _ in range(3)
        ]
        assert remaining == [2, 1, 0]

    def test_request_id_header_echoed(self, client):
        response = client.post(
            ENDPOINT, json={"input": text_input()}, headers={"X-Request-ID": "abc123"}
        )
        assert response.headers["X-Request-ID"] == "abc123"
        assert response.headers["X-Response-Time-Ms"] == IsStr(regex=r"\d+(\.\d+)?")


class TestQuota:
    def test_over_quota_is_429_with_retry_after(self, client, mock_openai):
        for _ in range(3):
            assert _post(client, {"input": image_input()}).status_code == 200

        response = _post(client, {"input": image_input()})
        assert response.status_code == 429
        assert response.json() == {
            "error": "Rate limit exceeded. Please try again later.",
            "type": "CaptionRateLimitError",
        }
        assert int(response.headers["Retry-After"]) == IsInt(ge=1, le=60)
        assert mock_openai.responses.create.await_count == 3

    def test_quota_is_per_identity(self, client):
        for _ in range(3):
            _post(client, {"input": image_input()}, ip="203.0.113.7")

        assert _post(client, {"input": image_input()}, ip="203.0.113.7").status_code == 429
        assert _post(client, {"input": image_input()}, ip="198.51.100.9").status_code == 200

    def test_real_ip_identifies_client(self, client):
        for _ in range(3):
            client.post(ENDPOINT, json={"input": text_input()}, headers={"X-Real-IP": "10.1.1.1"})
        response = client.post(
            ENDPOINT, json={"input": text_input()}, headers={"X-Real-IP": "10.1.1.1"}
        )
        assert response.status_code == 429

    def test_headerless_clients_share_a_bucket(self, client):
        for _ in range(3):
            client.post(ENDPOINT, json={"input": text_input()})
        assert client.post(ENDPOINT, json={"input": text_input()}).status_code == 429

    def test_malformed_requests_still_consume_quota(self, client):
        for _ in range(3):
            assert _post(client, {"input": []}).status_code == 400
        assert _post(client, {"input": image_input()}).status_code == 429


class TestInputRejection:
    @pytest.mark.parametrize(
        "body",
        [
            {"input": []},
            {},
            {"input": "caption this"},
            {"input": [{"role": "user", "content": []}]},
            {"input": [{"role": "user", "content": [{"type": "input_video", "url": "x"}]}]},
            {"input": [{"role": "user", "content": [{"type": "input_image"}]}]},
        ],
    )
    def test_malformed_body_is_invalid_input_format(self, client, body, mock_openai):
        response = _post(client, body)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid input format", "type": "InputValidationError"}
        mock_openai.responses.create.assert_not_called()

    def test_non_json_body(self, client):
        response = client.post(
            ENDPOINT, content=b"not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input format"

    def test_blank_text_rejected(self, client, mock_openai):
        response = _post(client, {"input": text_input("   ")})
        assert response.status_code == 400
        assert response.json()["error"] == "Input text cannot be empty"
        mock_openai.responses.create.assert_not_called()

    def test_image_only_request_has_empty_text(self, client, mock_openai):
        body = {
            "input": [
                {"role": "user", "content": [{"type": "input_image", "image_url": IMAGE_URL}]}
            ]
        }
        response = _post(client, body)
        assert response.status_code == 400
        assert response.json()["error"] == "Input text cannot be empty"
        mock_openai.moderations.create.assert_not_called()

    def test_overlong_text_rejected(self, client):
        response = _post(client, {"input": text_input("a" * 2001)})
        assert response.status_code == 400
        assert response.json()["error"] == (
            "Input text exceeds maximum length of 2000 characters"
        )

    def test_text_at_limit_accepted(self, client):
        assert _post(client, {"input": text_input("a" * 2000)}).status_code == 200


class TestModerationGate:
    def test_flagged_image_is_400(self, client, mock_openai):
        mock_openai.moderations.create.return_value = moderation_response(
            (True, {"violence": True, "sexual": False})
        )
        response = _post(client, {"input": image_input()})

        assert response.status_code == 400
        body = response.json()
        assert body["type"] == "ContentFlaggedError"
        assert body["error"] == "Content flagged as inappropriate: violence"
        assert "sexual" not in body["error"]
        mock_openai.responses.create.assert_not_called()

    def test_every_image_sent_to_moderation(self, client, mock_openai):
        urls = ("https://img.test/a.png", "https://img.test/b.png")
        _post(client, {"input": image_input(*urls)})

        kwargs = mock_openai.moderations.create.await_args.kwargs
        assert [item["image_url"]["url"] for item in kwargs["input"]] == list(urls)


class TestUpstreamFailures:
    def test_non_completed_status_is_500(self, client, mock_openai):
        mock_openai.responses.create.return_value = completion_response("x", status="incomplete")
        response = _post(client, {"input": image_input()})
        assert response.status_code == 500
        assert response.json() == {
            "error": "Responses API error: incomplete",
            "type": "UpstreamStatusError",
        }

    def test_empty_output_placeholder(self, client, mock_openai):
        mock_openai.responses.create.return_value = completion_response("")
        response = _post(client, {"input": image_input()})
        assert response.status_code == 200
        assert response.json()["response"] == "Response received"

    def test_unexpected_exception_message_surfaces(self, client, mock_openai):
        mock_openai.responses.create = AsyncMock(side_effect=RuntimeError("socket closed"))
        response = _post(client, {"input": image_input()})
        assert response.status_code == 500
        assert response.json() == {"error": "socket closed", "type": "UnhandledCaptionError"}

    def test_exception_without_message_gets_fallback(self, client, mock_openai):
        mock_openai.responses.create = AsyncMock(side_effect=RuntimeError())
        response = _post(client, {"input": image_input()})
        assert response.status_code == 500
        assert response.json()["error"] == "Caption generation failed"

    def test_sdk_error_is_500(self, client, mock_openai):
        mock_openai.moderations.create = AsyncMock(
            side_effect=openai.APIConnectionError(
                request=httpx.Request("POST", "https://api.openai.test/v1/moderations")
            )
        )
        response = _post(client, {"input": image_input()})
        assert response.status_code == 500
        assert response.json()["type"] == "UnhandledCaptionError"


class TestMissingCredential:
    @pytest.fixture
    def unconfigured_client(self) -> TestClient:
        app = create_app(Settings(openai_api_key="", caption_rate_limit="3/minute"))
        return TestClient(app)

    def test_generic_500(self, unconfigured_client):
        response = _post(unconfigured_client, {"input": text_input()})
        assert response.status_code == 500
        assert response.json() == {
            "error": "Caption service temporarily unavailable",
            "type": "ConfigurationError",
        }
        assert "OPENAI_API_KEY" not in response.text

    def test_invalid_input_still_reported_first(self, unconfigured_client):
        response = _post(unconfigured_client, {"input": []})
        assert response.status_code == 400


class TestMetricsRecorded:
    def test_outcomes_counted(self, client, metrics, mock_openai):
        _post(client, {"input": image_input()})
        _post(client, {"input": text_input()})
        mock_openai.moderations.create.return_value = moderation_response(
            (True, {"hate": True})
        )
        _post(client, {"input": image_input()})
        _post(client, {"input": image_input()})

        data = metrics.to_dict()
        assert data["requests_total"] == 4
        assert data["captions_completed"] == 1
        assert data["answers_completed"] == 1
        assert data["flagged_inputs"] == 1
        assert data["rate_limited"] == 1
