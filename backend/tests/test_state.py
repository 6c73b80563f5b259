from __future__ import annotations

from musterroll.state import ReportView, ReportViewRegistry


def test_only_latest_request_is_applied():
    view = ReportView()
    first = view.begin()
    second = view.begin()

    assert view.apply(second, "fresh") is True
    assert view.apply(first, "stale") is False
    assert view.current == "fresh"
    assert view.applied_ticket == second


def test_slow_older_refresh_keeps_its_own_result_but_not_the_display():
    view = ReportView()
    results = {}

    def slow_loader():
        # a newer refresh starts and completes while this one is in flight
        results["inner"] = view.refresh(lambda: "newer")
        return "older"

    outer = view.refresh(slow_loader)

    assert results["inner"] == "newer"
    assert outer == "older"
    assert view.current == "newer"
    assert view.applied_ticket == 2


def test_closed_view_drops_results():
    view = ReportView()
    ticket = view.begin()
    view.close()

    assert view.apply(ticket, "late") is False
    assert view.current is None
    assert view.refresh(lambda: "value") == "value"
    assert view.current is None


def test_registry_scopes_views_and_closes_per_session():
    registry = ReportViewRegistry()
    a = registry.get("token-a", "muster-roll")

    assert registry.get("token-a", "muster-roll") is a
    assert registry.get("token-b", "muster-roll") is not a

    registry.get("token-a", "summary")
    assert registry.close_session("token-a") == 2
    assert a.closed
    assert registry.get("token-a", "muster-roll") is not a
    assert registry.close_session("nobody") == 0


def test_registry_evicts_least_recently_used_views():
    registry = ReportViewRegistry(max_views=2)
    first = registry.get("token-a", "muster-roll?month=01")
    second = registry.get("token-a", "muster-roll?month=02")
    registry.get("token-a", "muster-roll?month=01")
    registry.get("token-b", "summary?from_date=2026-01-01")

    assert len(registry) == 2
    assert registry.get("token-a", "muster-roll?month=01") is first
    assert not first.closed
    assert second.closed
    assert registry.close_session("token-a") == 1
