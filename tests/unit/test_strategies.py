"""Tests for bike_render.clients.strategies: per-model request shaping and decoding."""

from __future__ import annotations

import base64

import pytest

from bike_render.clients import strategies
from bike_render.clients.strategies import (
    ImagesEditStrategy,
    ResponsesImageStrategy,
    decode_image_payload,
    extract_image_base64,
    get_strategy,
    register_strategy,
    registered_models,
)
from bike_render.errors import MissingImageInResponse, UnsupportedModelError
from bike_render.tasks.image_normalize import ImagePolicy
from conftest import make_image_bytes, png_b64

PNG = make_image_bytes((32, 32), fmt="PNG")


class TestRegistry:
    def test_known_models(self):
        assert isinstance(get_strategy("dall-e-2"), ImagesEditStrategy)
        assert isinstance(get_strategy("gpt-image-1"), ImagesEditStrategy)
        assert isinstance(get_strategy("gpt-4.1"), ResponsesImageStrategy)

    def test_unknown_model(self):
        with pytest.raises(UnsupportedModelError, match="dall-e-2"):
            get_strategy("imaginary-model")

    def test_register_new_model(self, monkeypatch):
        monkeypatch.setattr(strategies, "_STRATEGIES", dict(strategies._STRATEGIES))
        custom = ImagesEditStrategy("custom-edit", supported_sizes=("512x512",), square_input=True)
        register_strategy(custom)
        assert get_strategy("custom-edit") is custom

    def test_unknown_model_lists_registered_models(self, monkeypatch):
        monkeypatch.setattr(strategies, "_STRATEGIES", dict(strategies._STRATEGIES))
        register_strategy(ImagesEditStrategy("custom-edit", supported_sizes=("512x512",)))
        assert "custom-edit" in registered_models()
        with pytest.raises(UnsupportedModelError, match="custom-edit"):
            get_strategy("imaginary-model")


class TestSizes:
    """Requested sizes map down to backend-supported geometries."""

    @pytest.mark.parametrize("requested", ["1024x1024", "1536x1024", "1024x1536"])
    def test_dalle2_always_square(self, requested):
        assert get_strategy("dall-e-2").effective_size(requested) == "1024x1024"

    def test_dalle2_falls_back_to_smallest(self):
        assert get_strategy("dall-e-2").effective_size("128x128") == "256x256"

    def test_dalle2_picks_largest_fitting(self):
        assert get_strategy("dall-e-2").effective_size("600x900") == "512x512"

    @pytest.mark.parametrize("requested", ["1024x1024", "1536x1024", "1024x1536"])
    def test_gpt_image_passes_supported_sizes(self, requested):
        assert get_strategy("gpt-image-1").effective_size(requested) == requested

    def test_square_model_policy_matches_size(self):
        assert get_strategy("dall-e-2").image_policy("512x512") == ImagePolicy(512, True, True)

    def test_free_aspect_policy(self):
        assert get_strategy("gpt-image-1").image_policy("1536x1024") == ImagePolicy(1600, False, False)

    def test_prompt_limits(self):
        assert get_strategy("dall-e-2").prompt_length_limit == 1000
        assert get_strategy("gpt-image-1").prompt_length_limit is None


class TestImagesEditRequest:
    """Multipart /images/edits requests."""

    def test_dalle2_fields(self):
        request = get_strategy("dall-e-2").build_request(PNG, "make it shiny", "1024x1024")
        assert request.path == "/images/edits"
        assert request.data == {
            "model": "dall-e-2",
            "prompt": "make it shiny",
            "size": "1024x1024",
            "response_format": "b64_json",
        }
        assert request.files == [("image", ("bike.png", PNG, "image/png"))]
        assert request.optional_params == ()
        assert request.json is None

    def test_gpt_image_optional_params(self):
        request = get_strategy("gpt-image-1").build_request(PNG, "p", "1536x1024")
        assert request.data["quality"] == "high"
        assert request.data["output_format"] == "png"
        assert "response_format" not in request.data
        assert set(request.optional_params) == {"quality", "output_format"}

    def test_gpt_image_without_optional_params(self):
        request = get_strategy("gpt-image-1").build_request(PNG, "p", "1536x1024", include_optional=False)
        assert "quality" not in request.data
        assert "output_format" not in request.data
        assert request.optional_params == ()

    def test_describe_omits_image(self):
        summary = get_strategy("dall-e-2").build_request(PNG, "p", "1024x1024").describe()
        assert summary == {
            "path": "/images/edits",
            "fields": ["model", "prompt", "response_format", "size"],
            "optional": [],
        }


class TestResponsesRequest:
    """JSON /responses requests with an inline data URL."""

    def test_body_shape(self):
        request = get_strategy("gpt-4.1").build_request(PNG, "add panniers", "1024x1536")
        body = request.json
        assert request.path == "/responses"
        assert request.files is None
        assert body["model"] == "gpt-4.1"
        content = body["input"][0]["content"]
        assert content[0] == {"type": "input_text", "text": "add panniers"}
        assert content[1]["type"] == "input_image"
        prefix = "data:image/png;base64,"
        assert content[1]["image_url"].startswith(prefix)
        assert base64.b64decode(content[1]["image_url"][len(prefix):]) == PNG
        assert body["tools"][0]["type"] == "image_generation"
        assert body["tools"][0]["size"] == "1024x1536"
        assert body["tools"][0]["quality"] == "high"

    def test_optional_params_dropped(self):
        request = get_strategy("gpt-4.1").build_request(PNG, "p", "1024x1024", include_optional=False)
        assert request.json["tools"][0] == {"type": "image_generation", "size": "1024x1024"}


class TestResponseDecoding:
    """Both envelope shapes decode; anything else is a missing image."""

    def test_flat_data_list(self):
        encoded = png_b64()
        assert extract_image_base64({"data": [{"b64_json": encoded}]}) == encoded

    def test_flat_data_skips_empty_entries(self):
        encoded = png_b64()
        assert extract_image_base64({"data": [{"url": "x"}, {"b64_json": encoded}]}) == encoded

    def test_structured_output(self):
        encoded = png_b64()
        body = {
            "output": [
                {"type": "reasoning", "summary": []},
                {"type": "image_generation_call", "status": "completed", "result": encoded},
            ]
        }
        assert extract_image_base64(body) == encoded

    def test_decode_returns_bytes(self):
        encoded = png_b64((8, 8))
        assert decode_image_payload({"data": [{"b64_json": encoded}]}) == base64.b64decode(encoded)

    def test_decode_accepts_line_wrapped_base64(self):
        raw = make_image_bytes((256, 256))
        wrapped = base64.encodebytes(raw).decode("ascii")
        assert "\n" in wrapped
        assert decode_image_payload({"output": [{"type": "image_generation_call", "result": wrapped}]}) == raw

    @pytest.mark.parametrize(
        "body",
        [
            {"data": []},
            {"output": [{"type": "message", "content": []}]},
            {"output": [{"type": "image_generation_call", "result": None}]},
            "plain text",
            None,
        ],
    )
    def test_missing_image(self, body):
        with pytest.raises(MissingImageInResponse) as excinfo:
            decode_image_payload(body)
        assert excinfo.value.body == body

    def test_invalid_base64(self):
        with pytest.raises(MissingImageInResponse, match="decode"):
            decode_image_payload({"data": [{"b64_json": "***not base64***"}]})
