"""
Unit tests for change detection.
Tests both detection strategies against a real SQLite store.
"""
import threading

import pytest

from inventory_watch.db import Store
from inventory_watch.detector import detect_listing, detect_timestamp
from inventory_watch.scraper import ExtractionError, parse


class TestTimestampDetector:
    """Test the "last updated" marker strategy."""

    def test_first_run_is_changed(self, store, timestamp_doc):
        assert detect_timestamp(store, "a", timestamp_doc("Jan 1")) is True
        assert store.get_provider_state("a").updated_msg == "Jan 1"

    def test_same_marker_is_not_changed(self, store, timestamp_doc):
        detect_timestamp(store, "a", timestamp_doc("Jan 1"))
        assert detect_timestamp(store, "a", timestamp_doc("Jan 1")) is False
        assert store.get_provider_state("a").updated_msg == "Jan 1"

    def test_new_marker_is_changed_and_stored(self, store, timestamp_doc):
        detect_timestamp(store, "a", timestamp_doc("Jan 1"))
        assert detect_timestamp(store, "a", timestamp_doc("Jan 2")) is True
        assert store.get_provider_state("a").updated_msg == "Jan 2"

    @pytest.mark.parametrize("stored, fresh, expected", [
        ("Jan 1", "Jan 1", False),
        ("Jan 1", "jan 1", True),
        ("Jan 1", "Jan 1 ", True),
        ("", "", False),
        ("", "Jan 1", True),
        ("Jan 1", "", True),
    ])
    def test_exact_string_comparison(self, store, timestamp_doc, stored, fresh, expected):
        detect_timestamp(store, "a", timestamp_doc(stored))
        assert detect_timestamp(store, "a", timestamp_doc(fresh)) is expected

    def test_empty_marker_on_first_run_is_changed(self, store, timestamp_doc):
        assert detect_timestamp(store, "a", timestamp_doc("")) is True
        assert store.get_provider_state("a").updated_msg == ""

    def test_missing_banner_raises_and_keeps_state(self, store, timestamp_doc):
        detect_timestamp(store, "a", timestamp_doc("Jan 1"))
        with pytest.raises(ExtractionError):
            detect_timestamp(store, "a", parse("<html><body>maintenance</body></html>"))
        assert store.get_provider_state("a").updated_msg == "Jan 1"

    def test_providers_are_independent(self, store, timestamp_doc):
        detect_timestamp(store, "a", timestamp_doc("Jan 1"))
        assert detect_timestamp(store, "b", timestamp_doc("Jan 1")) is True


class TestListingDetector:
    """Test the product-listing strategy."""

    def test_first_run_is_changed(self, store, listing_doc):
        assert detect_listing(store, "b", listing_doc(["x", "y"])) is True
        assert store.get_provider_state("b").product_links == ["x", "y"]

    def test_first_run_with_empty_listing_is_changed(self, store, listing_doc):
        assert detect_listing(store, "b", listing_doc([])) is True
        assert store.get_provider_state("b").product_links == []

    def test_new_item_at_front_is_changed(self, store, listing_doc):
        detect_listing(store, "b", listing_doc(["x", "y", "z"]))
        assert detect_listing(store, "b", listing_doc(["w", "x", "y"])) is True
        assert store.get_provider_state("b").product_links == ["w", "x", "y"]

    def test_known_first_item_is_not_changed_but_listing_is_stored(self, store, listing_doc):
        detect_listing(store, "b", listing_doc(["x", "y", "z"]))
        assert detect_listing(store, "b", listing_doc(["z", "q", "x"])) is False
        assert store.get_provider_state("b").product_links == ["z", "q", "x"]

    def test_removal_is_tracked_without_notifying(self, store, listing_doc):
        detect_listing(store, "b", listing_doc(["x", "y", "z"]))
        assert detect_listing(store, "b", listing_doc(["x", "z"])) is False
        assert store.get_provider_state("b").product_links == ["x", "z"]

    def test_emptied_listing_is_not_changed(self, store, listing_doc):
        detect_listing(store, "b", listing_doc(["x"]))
        assert detect_listing(store, "b", listing_doc([])) is False
        assert store.get_provider_state("b").product_links == []

    def test_idempotent_on_identical_content(self, store, listing_doc):
        assert detect_listing(store, "b", listing_doc(["x", "y"])) is True
        assert detect_listing(store, "b", listing_doc(["x", "y"])) is False

    def test_only_product_image_links_count(self, store, listing_doc):
        detect_listing(store, "b", listing_doc(["x"]))
        assert store.get_provider_state("b").product_links == ["x"]

    def test_missing_grid_raises_and_keeps_state(self, store, listing_doc):
        detect_listing(store, "b", listing_doc(["x"]))
        with pytest.raises(ExtractionError):
            detect_listing(store, "b", parse("<html><body><p>Closed</p></body></html>"))
        assert store.get_provider_state("b").product_links == ["x"]


class TestOverlappingRuns:
    """Concurrent detectors on the same page must agree on a single change."""

    @pytest.mark.parametrize("detect, page", [
        (detect_timestamp, "<div class='timestamp'><p>Jan 2</p></div>"),
        (detect_listing, "<ul class='products'><li class='product'>"
                         "<div class='product-images'><a href='w'>w</a></div></li></ul>"),
    ])
    def test_exactly_one_thread_sees_the_change(self, tmp_path, detect, page):
        store = Store(str(tmp_path / "race.db"), busy_timeout=10)
        store.init_db()
        workers = 8
        barrier = threading.Barrier(workers)
        results, errors = [], []

        def _run():
            barrier.wait()
            try:
                results.append(detect(store, "a", parse(page)))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=_run) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)

        assert errors == []
        assert results.count(True) == 1
        assert results.count(False) == workers - 1
