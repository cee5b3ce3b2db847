"""Unit tests for the corpus service client."""

from unittest.mock import Mock, patch

import pytest
import requests

from sourcesheet.ai.client import (
    CorpusAPIError,
    CorpusClient,
    CorpusConnectionError,
    flatten_text,
)


def _response(status=200, payload=None, text=""):
    response = Mock()
    response.status_code = status
    response.text = text
    response.json.return_value = payload
    return response


class TestCorpusClient:
    """Test corpus lookups and search."""

    def test_init(self):
        """Endpoint and timeout are stored."""
        client = CorpusClient("https://corpus.example.org/api", timeout=5)
        assert client.endpoint == "https://corpus.example.org/api/"
        assert client.timeout == 5

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_get_text(self, mock_get):
        """Text lookup quotes the reference and flattens the text."""
        mock_get.return_value = _response(payload={
            "ref": "Genesis 1:1",
            "heRef": "בראשית א׳:א׳",
            "text": ["In the beginning"],
            "he": ["<b>בְּרֵאשִׁית</b> בָּרָא"],
            "book": "Genesis",
            "categories": ["Tanakh", "Torah"],
        })
        client = CorpusClient("https://corpus.example.org/api/")
        result = client.get_text("Genesis 1:1")

        assert result.ref == "Genesis 1:1"
        assert result.canonical_text == "בְּרֵאשִׁית בָּרָא"
        assert result.text == "In the beginning"
        assert result.categories == ["Tanakh", "Torah"]
        args, kwargs = mock_get.call_args
        assert args[0] == "https://corpus.example.org/api/texts/Genesis%201%3A1"
        assert kwargs["params"] == {"context": 0, "pad": 0}
        assert kwargs["timeout"] == 10.0

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_get_text_unknown_reference(self, mock_get):
        """HTTP 404 gives None."""
        mock_get.return_value = _response(status=404)
        assert CorpusClient().get_text("Nowhere 1:1") is None

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_get_text_error_field(self, mock_get):
        """An error field in the body gives None."""
        mock_get.return_value = _response(payload={"error": "Could not find title"})
        assert CorpusClient().get_text("Nowhere 1:1") is None

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_get_text_server_error(self, mock_get):
        """Server errors raise CorpusAPIError."""
        mock_get.return_value = _response(status=500, text="oops")
        with pytest.raises(CorpusAPIError):
            CorpusClient().get_text("Genesis 1:1")

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_timeout(self, mock_get):
        """Timeouts raise CorpusConnectionError."""
        mock_get.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(CorpusConnectionError) as exc_info:
            CorpusClient().get_text("Genesis 1:1")
        assert "timed out" in str(exc_info.value)

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_connection_error(self, mock_get):
        """Connection failures raise CorpusConnectionError."""
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(CorpusConnectionError):
            CorpusClient().search("בראשית ברא")

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_search(self, mock_get):
        """Search hits carry reference, snippet and score."""
        mock_get.return_value = _response(payload={"hits": {"hits": [
            {"_score": 12.5, "_source": {"ref": "Genesis 1:1", "heRef": "בראשית א׳:א׳", "exact": "בראשית <b>ברא</b>"}},
            {"_score": 3.0, "_source": {}},
        ]}})
        hits = CorpusClient().search("בראשית ברא", size=3)
        assert len(hits) == 1
        assert hits[0].reference == "Genesis 1:1"
        assert hits[0].snippet == "בראשית ברא"
        assert hits[0].score == 12.5
        assert mock_get.call_args[1]["params"] == {"size": 3, "type": "text"}

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_short_query_skips_request(self, mock_get):
        """Queries under 3 characters are not sent."""
        assert CorpusClient().search("בר") == []
        mock_get.assert_not_called()

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_invalid_json(self, mock_get):
        """Non-JSON bodies raise CorpusAPIError."""
        response = _response(text="<html>")
        response.json.side_effect = ValueError("no json")
        mock_get.return_value = response
        with pytest.raises(CorpusAPIError):
            CorpusClient().search("בראשית")

    @patch('sourcesheet.ai.client.requests.Session.get')
    def test_health_check(self, mock_get):
        """Health check reports reachability."""
        mock_get.return_value = _response(status=200)
        assert CorpusClient().health_check() is True
        mock_get.side_effect = requests.exceptions.ConnectionError("down")
        assert CorpusClient().health_check() is False


def test_flatten_text():
    """Nested text arrays are flattened and tags stripped."""
    assert flatten_text([["א", "<i>ב</i>"], "ג", None]) == "א ב ג"
    assert flatten_text(None) == ""
