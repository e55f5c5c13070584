"""Tests for page advancing and signature-based move detection."""
from __future__ import annotations

from cvwatch_pager import (
    DEFAULT_LOCATORS,
    NEXT_SELECTORS,
    SelectorLocator,
    TextLabelLocator,
    advance,
    table_signature,
)
from fakes import FakeDocument, make_table, paged, row


def _two_pages():
    rows = [row(f"2024-06-{d:02d} 10:00") for d in range(20, 10, -1)]
    return paged(rows, 5)


def test_signature_uses_first_and_last_row(header_map):
    doc = FakeDocument(_two_pages())
    sig = table_signature(doc, header_map)
    assert sig.startswith("2024-06-20 10:00")
    assert "||2024-06-16 10:00" in sig


def test_signature_empty_without_table(header_map):
    assert table_signature(FakeDocument([[]]), header_map) == ""


def test_signature_is_bounded(header_map):
    long = row("2024-06-01 10:00", referrer="x" * 5000)
    doc = FakeDocument([[make_table([long])]])
    assert len(table_signature(doc, header_map)) == 2000


def test_advance_via_selector(header_map):
    doc = FakeDocument(_two_pages())
    assert advance(doc, header_map, settle_timeout_s=1) is True
    assert doc.index == 1
    assert doc.clicks == [NEXT_SELECTORS[0]]


def test_advance_with_navigation(header_map):
    doc = FakeDocument(_two_pages(), next_selector=NEXT_SELECTORS[3], navigate=True)
    assert advance(doc, header_map, settle_timeout_s=1) is True
    assert doc.navigation_count == 1


def test_falls_back_to_text_label(header_map):
    doc = FakeDocument(_two_pages(), text_only=True)
    assert advance(doc, header_map, settle_timeout_s=1) is True
    assert doc.clicks == ["text"]


def test_last_page_does_not_move(header_map):
    doc = FakeDocument(_two_pages())
    doc.index = 1
    assert advance(doc, header_map, settle_timeout_s=1) is False
    assert doc.clicks == []


def test_click_without_change_is_not_a_move(header_map):
    doc = FakeDocument(_two_pages(), stuck=True)
    assert advance(doc, header_map, settle_timeout_s=1, interval_s=0.5) is False
    assert doc.clicks == [NEXT_SELECTORS[0]]
    assert doc.index == 0


def test_strategy_chain_order():
    assert [str(l) for l in DEFAULT_LOCATORS[:1]] == [f"selector {NEXT_SELECTORS[0]!r}"]
    assert isinstance(DEFAULT_LOCATORS[-1], TextLabelLocator)
    assert all(isinstance(l, SelectorLocator) for l in DEFAULT_LOCATORS[:-1])


def test_custom_locator_chain_stops_at_first_move(header_map):
    doc = FakeDocument(_two_pages(), next_selector="a.custom")
    chain = (SelectorLocator("a.missing"), SelectorLocator("a.custom"), SelectorLocator("a.custom"))
    assert advance(doc, header_map, locators=chain, settle_timeout_s=1) is True
    assert doc.clicks == ["a.custom"]


def test_unreadable_page_after_navigation_is_a_non_move(header_map):
    doc = FakeDocument(_two_pages(), navigate=True, unreadable_after_click=1)
    assert advance(doc, header_map, settle_timeout_s=1) is False
    assert doc.clicks == [NEXT_SELECTORS[0]]
    assert doc.navigation_count == 1


def test_transient_read_failures_while_settling(header_map):
    doc = FakeDocument(_two_pages(), unreadable_after_click=2)
    assert advance(doc, header_map, settle_timeout_s=1) is True
    assert doc.index == 1


def test_signature_empty_while_unreadable(header_map):
    doc = FakeDocument(_two_pages(), unreadable_after_click=1)
    doc.click_selector(NEXT_SELECTORS[0])
    assert table_signature(doc, header_map) == ""
    assert table_signature(doc, header_map).startswith("2024-06-15 10:00")
