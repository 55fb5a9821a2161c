"""
Unit tests for page fetching and document queries.
"""
from unittest.mock import Mock, patch

import pytest
import requests

from inventory_watch.scraper import (ExtractionError, extract_marker,
                                     extract_product_links, fetch_page, parse,
                                     select_attrs, select_text)
from inventory_watch.utils import NetworkError


def _response(status: int, text: str = "") -> Mock:
    resp = Mock(status_code=status, text=text)
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


class TestSelectors:
    """Test extraction helpers on parsed HTML."""

    def test_marker_is_first_paragraph_text(self, timestamp_doc):
        assert extract_marker(timestamp_doc("Updated 3:15pm")) == "Updated 3:15pm"

    def test_marker_missing_raises(self):
        with pytest.raises(ExtractionError):
            extract_marker(parse("<div class='timestamp'><span>x</span></div>"))

    def test_product_links_in_order(self, listing_doc):
        assert extract_product_links(listing_doc(["/a", "/b", "/c"])) == ["/a", "/b", "/c"]

    def test_product_links_skip_other_lists(self):
        doc = parse(
            "<ul class='products'><li class='product'><div class='product-images'>"
            "<a href='/in'>i</a></div></li></ul>"
            "<ul class='related'><li class='product'><div class='product-images'>"
            "<a href='/out'>o</a></div></li></ul>"
        )
        assert extract_product_links(doc) == ["/in"]

    def test_empty_grid_is_valid(self):
        assert extract_product_links(parse("<ul class='products'></ul>")) == []

    def test_select_text_and_attrs(self):
        doc = parse("<h1> Hi </h1><a href='1'></a><a></a><a href='2'></a>")
        assert select_text(doc, "h1") == " Hi "
        assert select_attrs(doc, "a", "href") == ["1", "2"]


class TestFetchPage:
    """Test HTTP fetch and its error mapping."""

    def test_returns_body(self):
        session = Mock()
        session.get.return_value = _response(200, "<html>ok</html>")

        assert fetch_page("https://a.test/", session=session) == "<html>ok</html>"
        session.get.assert_called_once()
        session.close.assert_not_called()

    def test_client_error_is_network_error_without_retry(self):
        session = Mock()
        session.get.return_value = _response(404)

        with pytest.raises(NetworkError):
            fetch_page("https://a.test/", session=session)
        assert session.get.call_count == 1

    @patch("time.sleep")
    def test_server_error_is_retried_then_raised(self, _sleep):
        session = Mock()
        session.get.return_value = _response(503)

        with pytest.raises(NetworkError):
            fetch_page("https://a.test/", session=session)
        assert session.get.call_count == 3

    @patch("time.sleep")
    def test_connection_error_recovers_on_retry(self, _sleep):
        session = Mock()
        session.get.side_effect = [requests.ConnectionError("refused"), _response(200, "late")]

        assert fetch_page("https://a.test/", session=session) == "late"
        assert session.get.call_count == 2

    def test_owns_session_when_none_given(self):
        session = Mock()
        session.get.return_value = _response(200, "x")
        with patch("inventory_watch.scraper.get_http_session", return_value=session):
            fetch_page("https://a.test/")
        session.close.assert_called_once()
