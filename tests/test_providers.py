"""Unit tests for vision providers and provider output schemas."""

import io
import json
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import requests
from PIL import Image

from sourcesheet.ai.providers import (
    ClaudeProvider,
    CoordinateConvention,
    GeminiProvider,
    OpenAIProvider,
    ProviderAuthError,
    ProviderError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderSpec,
    ProviderTimeoutError,
    build_identify_prompt,
    build_provider_chain,
    classify_status_error,
    create_provider,
    extract_json_payload,
    prepare_vision_image,
)
from sourcesheet.ai.schemas import parse_candidates, parse_proposed_regions


class StatusError(Exception):
    """Mimics SDK status errors carrying status_code."""

    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


@pytest.fixture
def image():
    return Image.new("RGB", (60, 40), "white")


def _gemini_response(text, status=200):
    response = Mock()
    response.status_code = status
    response.text = text if status != 200 else ""
    response.json.return_value = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return response


class TestExtractJsonPayload:
    """Test parsing model text into JSON."""

    def test_fenced(self):
        """Fenced ```json blocks are unwrapped."""
        text = 'Here you go:\n```json\n{"candidates": [{"sefariaRef": "Berakhot 55a"}]}\n```'
        assert extract_json_payload(text) == {"candidates": [{"sefariaRef": "Berakhot 55a"}]}

    def test_bare_object_with_chatter(self):
        """A bare object is found inside surrounding chatter."""
        assert extract_json_payload('Sure! {"sources": []} Hope this helps') == {"sources": []}

    def test_bare_array(self):
        """A bare array is parsed too."""
        assert extract_json_payload('result: [1, 2]') == [1, 2]

    def test_no_json(self):
        """Replies without JSON raise ProviderResponseError."""
        with pytest.raises(ProviderResponseError):
            extract_json_payload("I cannot identify this source.")


class TestStatusClassification:
    """Test HTTP status mapping."""

    @pytest.mark.parametrize("status,error_type", [
        (429, ProviderRateLimitError),
        (401, ProviderAuthError),
        (403, ProviderAuthError),
        (404, ProviderNotFoundError),
        (500, ProviderError),
    ])
    def test_mapping(self, status, error_type):
        """Status codes map to the matching error class."""
        error = classify_status_error(status, "msg")
        assert type(error) is error_type
        assert str(status) in str(error)


class TestPrepareVisionImage:
    """Test image preparation limits."""

    def test_png_under_limit(self, image):
        """Small images are sent as PNG at full size."""
        data, mime = prepare_vision_image(image)
        assert mime == "image/png"
        assert Image.open(io.BytesIO(data)).size == (60, 40)

    def test_longest_side_scaled(self):
        """The longest side is scaled down to 4096 px."""
        data, _ = prepare_vision_image(Image.new("RGB", (5000, 100)))
        assert Image.open(io.BytesIO(data)).size == (4096, 82)


def test_identify_prompt_includes_text():
    """The OCR text is included in the identify prompt only when given."""
    assert "שמע ישראל" in build_identify_prompt("שמע ישראל")
    assert "OCR" not in build_identify_prompt(None)


class TestGeminiProvider:
    """Test Gemini REST integration."""

    def test_convention(self):
        """Gemini declares per-mille box_2d coordinates."""
        assert GeminiProvider("k").coordinate_convention == CoordinateConvention.BOX_2D_PERMILLE

    @patch('sourcesheet.ai.providers.requests.Session.post')
    def test_identify_source(self, mock_post, image):
        """Identify posts image and text and parses candidates."""
        payload = {"candidates": [{"sourceName": "Berakhot", "sefariaRef": "Berakhot 55a", "previewText": "אין"}]}
        mock_post.return_value = _gemini_response("```json\n" + json.dumps(payload) + "\n```")

        provider = GeminiProvider("secret", model="gemini-1.5-flash")
        candidates = provider.identify_source(image, "אין חלום")

        assert len(candidates) == 1
        assert candidates[0].corpus_reference == "Berakhot 55a"
        assert candidates[0].display_name == "Berakhot"
        args, kwargs = mock_post.call_args
        assert args[0].endswith("models/gemini-1.5-flash:generateContent")
        assert kwargs["params"] == {"key": "secret"}
        parts = kwargs["json"]["contents"][0]["parts"]
        assert "אין חלום" in parts[0]["text"]
        assert parts[1]["inlineData"]["mimeType"] == "image/png"

    @patch('sourcesheet.ai.providers.requests.Session.post')
    def test_rate_limit(self, mock_post, image):
        """HTTP 429 raises ProviderRateLimitError."""
        mock_post.return_value = _gemini_response("quota exceeded", status=429)
        with pytest.raises(ProviderRateLimitError):
            GeminiProvider("k").identify_source(image)

    @patch('sourcesheet.ai.providers.requests.Session.post')
    def test_timeout(self, mock_post, image):
        """Request timeouts raise ProviderTimeoutError."""
        mock_post.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(ProviderTimeoutError):
            GeminiProvider("k").detect_sources(image)

    @patch('sourcesheet.ai.providers.requests.Session.post')
    def test_empty_text(self, mock_post, image):
        """An empty reply raises ProviderResponseError."""
        mock_post.return_value = _gemini_response("")
        with pytest.raises(ProviderResponseError):
            GeminiProvider("k").detect_sources(image)

    @patch('sourcesheet.ai.providers.requests.Session.post')
    def test_non_object_body(self, mock_post, image):
        """A JSON body that is not an object raises ProviderResponseError."""
        response = _gemini_response("")
        response.json.return_value = ["unexpected"]
        mock_post.return_value = response
        with pytest.raises(ProviderResponseError):
            GeminiProvider("k").identify_source(image)

    @patch('sourcesheet.ai.providers.requests.Session.post')
    def test_malformed_candidates_body(self, mock_post, image):
        """A body whose candidates are not objects raises ProviderResponseError."""
        response = _gemini_response("")
        response.json.return_value = {"candidates": "oops"}
        mock_post.return_value = response
        with pytest.raises(ProviderResponseError):
            GeminiProvider("k").detect_sources(image)

    @patch('sourcesheet.ai.providers.requests.Session.post')
    def test_detect_uses_permille_prompt(self, mock_post, image):
        """Detection asks for box_2d and returns the parsed payload."""
        mock_post.return_value = _gemini_response('{"sources": [{"box_2d": [0, 0, 500, 500]}]}')
        payload = GeminiProvider("k").detect_sources(image)
        assert payload["sources"][0]["box_2d"] == [0, 0, 500, 500]
        prompt = mock_post.call_args[1]["json"]["contents"][0]["parts"][0]["text"]
        assert "box_2d" in prompt


class TestSdkProviders:
    """Test OpenAI and Claude SDK wrappers."""

    @patch('sourcesheet.ai.providers.OpenAI')
    def test_openai_identify(self, mock_openai, image):
        """OpenAI replies are parsed into candidates."""
        client = mock_openai.return_value
        client.chat.completions.create.return_value = SimpleNamespace(choices=[
            SimpleNamespace(message=SimpleNamespace(content='{"candidates": [{"sefariaRef": "Avot 1:1"}]}'))
        ])
        provider = OpenAIProvider(api_key="k", model="gpt-4o")
        candidates = provider.identify_source(image)
        assert candidates[0].corpus_reference == "Avot 1:1"
        assert provider.label == "openai:gpt-4o"
        mock_openai.assert_called_once_with(api_key="k", timeout=10.0, max_retries=0)

    @patch('sourcesheet.ai.providers.OpenAI')
    def test_openai_status_error_translated(self, mock_openai, image):
        """SDK status errors are translated to provider errors."""
        mock_openai.return_value.chat.completions.create.side_effect = StatusError(429)
        with pytest.raises(ProviderRateLimitError):
            OpenAIProvider(api_key="k").identify_source(image)

    @patch('sourcesheet.ai.providers.Anthropic')
    def test_claude_detect(self, mock_anthropic, image):
        """Claude declares percent boxes and returns the parsed payload."""
        mock_anthropic.return_value.messages.create.return_value = SimpleNamespace(content=[
            SimpleNamespace(type="text", text='{"sources": [{"box": {"x": 1, "y": 2, "width": 3, "height": 4}}]}')
        ])
        provider = ClaudeProvider(api_key="k")
        assert provider.coordinate_convention == CoordinateConvention.BOX_PERCENT
        payload = provider.detect_sources(image)
        assert payload["sources"][0]["box"]["width"] == 3

    @patch('sourcesheet.ai.providers.Anthropic')
    def test_claude_auth_error(self, mock_anthropic, image):
        """HTTP 401 from the SDK raises ProviderAuthError."""
        mock_anthropic.return_value.messages.create.side_effect = StatusError(401)
        with pytest.raises(ProviderAuthError):
            ClaudeProvider(api_key="k").identify_source(image)

    @patch('sourcesheet.ai.providers.OpenAI', None)
    def test_missing_sdk(self):
        """A missing SDK raises ImportError."""
        with pytest.raises(ImportError):
            OpenAIProvider(api_key="k")


class TestProviderChain:
    """Test provider construction from specs."""

    def test_create_gemini(self):
        """create_provider builds a Gemini provider with the timeout."""
        provider = create_provider(ProviderSpec("gemini", "k", "gemini-1.5-pro"), timeout=5.0)
        assert isinstance(provider, GeminiProvider)
        assert provider.timeout == 5.0

    def test_unknown_provider(self):
        """Unknown provider names raise ValueError."""
        with pytest.raises(ValueError):
            create_provider(ProviderSpec("llama", "k", "m"))

    @patch('sourcesheet.ai.providers.OpenAI', None)
    def test_chain_skips_unusable_specs(self):
        """Specs with unknown names or missing SDKs are skipped."""
        specs = [
            ProviderSpec("openai", "k1", "gpt-4o"),
            ProviderSpec("nope", "k2", "m"),
            ProviderSpec("gemini", "k3", "gemini-1.5-flash"),
        ]
        chain = build_provider_chain(specs)
        assert [p.label for p in chain] == ["gemini:gemini-1.5-flash"]

    def test_spec_hides_key(self):
        """The API key never appears in repr."""
        assert "secret" not in repr(ProviderSpec("gemini", "secret", "m"))


class TestSchemas:
    """Test provider output validation."""

    def test_candidate_aliases(self):
        """All candidate field aliases are accepted."""
        candidates = parse_candidates({"candidates": [
            {"sourceName": "Rashi", "sefariaRef": "Rashi on Genesis 1:1", "previewText": "בראשית"},
            {"corpusReference": "Avot 1:1"},
            {"ref": None},
        ]})
        assert [c.corpus_reference for c in candidates] == ["Rashi on Genesis 1:1", "Avot 1:1", ""]
        assert candidates[1].display_name == "Avot 1:1"

    def test_malformed_candidate_dropped(self):
        """Malformed candidates are dropped item by item."""
        assert parse_candidates({"candidates": ["not a dict", {"sefariaRef": "Avot 1:1"}]})[0].corpus_reference == "Avot 1:1"

    def test_missing_list(self):
        """A payload without a candidate list yields nothing."""
        assert parse_candidates({"answer": "none"}) == []

    def test_regions(self):
        """Malformed regions are dropped with a warning."""
        regions, warnings = parse_proposed_regions({"sources": [
            {"box_2d": [1, 2, 3, 4], "text": None, "reference": "  "},
            {"box": {"x": "bad"}},
        ]})
        assert len(regions) == 1
        assert regions[0].text == ""
        assert regions[0].reference is None
        assert len(warnings) == 1
