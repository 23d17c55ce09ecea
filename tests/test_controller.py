"""Tests for SearchController search, selection, bulk and export flows."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from journal_search.action_messages import INVALID_RANGE_MESSAGE, NO_RESULTS_MESSAGE
from journal_search.bulk import BulkKind
from journal_search.controller import SearchController
from journal_search.models import FilterState, SearchStatus, UserConfig, Work, WorksPage
from journal_search.query import SearchQuery
from journal_search.services.interfaces import AppServices


async def _wait_for_calls(fake, count: int = 1) -> None:
    while len(fake.calls) < count:
        await asyncio.sleep(0)


def _ids(works: list[Work]) -> list[str]:
    return [work.id for work in works]


def _record_count(path) -> int:
    return path.read_text(encoding="utf-8").count("TY  - JOUR")


# ============================================================================
# Interactive search
# ============================================================================


class TestRunSearch:
    @pytest.mark.asyncio
    async def test_empty_identifier_set_makes_no_request(self, make_controller, fake_openalex):
        controller = make_controller(total=100)
        controller.apply_filter(fields={"Nonexistent"})
        controller.state.selected_ids = ["W1"]

        await controller.run_search()

        assert fake_openalex.calls == []
        assert controller.state.status is SearchStatus.ERROR
        assert controller.state.error_message == NO_RESULTS_MESSAGE
        assert controller.state.works == []
        assert controller.state.total_count == 0
        assert controller.state.selected_ids == []

    @pytest.mark.asyncio
    async def test_first_page_loaded(self, make_controller, fake_openalex):
        controller = make_controller(total=45)
        controller.apply_filter(ft50=True)
        controller.set_search_inputs(keywords="platforms", year_from="2015", year_to="2020")

        await controller.run_search()

        state = controller.state
        assert state.status is SearchStatus.READY
        assert state.has_searched
        assert state.total_count == 45
        assert _ids(state.works) == [f"W{i}" for i in range(20)]
        assert set(state.selected_works) == {f"W{i}" for i in range(20)}
        assert controller.total_pages() == 3

        (query,) = fake_openalex.calls
        assert query == SearchQuery(
            issns=("0022-1082", "0025-1909", "0048-7333"),
            keywords="platforms",
            year_from="2015",
            year_to="2020",
            sort="cited_by_count:desc",
            page=1,
            per_page=20,
            api_key="",
        )

    @pytest.mark.asyncio
    async def test_config_seeds_sort_page_size_and_key(self, make_controller, fake_openalex):
        controller = make_controller(total=5, sort="display_name:asc", page_size=40, api_key="k")

        await controller.run_search()

        (query,) = fake_openalex.calls
        assert (query.sort, query.per_page, query.api_key) == ("display_name:asc", 40, "k")

    @pytest.mark.asyncio
    async def test_new_search_clears_selection_and_mapping(self, make_controller):
        controller = make_controller(total=45)
        await controller.run_search()
        await controller.change_page(2)
        controller.toggle_selection("W25")

        await controller.run_search()

        assert controller.state.selected_ids == []
        assert set(controller.state.selected_works) == {f"W{i}" for i in range(20)}
        assert controller.state.current_page == 1

    @pytest.mark.asyncio
    async def test_failure_clears_results(self, make_controller, fake_openalex, status_error):
        controller = make_controller(total=45)
        await controller.run_search()
        fake_openalex.fail_pages[2] = status_error(500)

        await controller.change_page(2)

        state = controller.state
        assert state.status is SearchStatus.ERROR
        assert state.error_message == "OpenAlex error: 500"
        assert state.works == []
        assert state.total_count == 0

    @pytest.mark.asyncio
    async def test_listener_runs_on_changes(self, make_controller):
        controller = make_controller(total=5)
        statuses: list[SearchStatus] = []
        controller.add_listener(lambda: statuses.append(controller.state.status))

        await controller.run_search()

        assert statuses == [SearchStatus.SEARCHING, SearchStatus.READY]


class TestPaging:
    @pytest.mark.asyncio
    async def test_page_navigation_merges_mapping_and_keeps_selection(
        self, make_controller, fake_openalex
    ):
        controller = make_controller(total=45)
        await controller.run_search()
        controller.toggle_selection("W3")

        await controller.change_page(2)

        state = controller.state
        assert state.current_page == 2
        assert _ids(state.works) == [f"W{i}" for i in range(20, 40)]
        assert state.selected_ids == ["W3"]
        assert len(state.selected_works) == 40
        assert fake_openalex.pages_requested == [(1, 20), (2, 20)]

    @pytest.mark.asyncio
    async def test_page_is_clamped(self, make_controller, fake_openalex):
        controller = make_controller(total=45)
        await controller.run_search()

        await controller.change_page(99)
        assert controller.state.current_page == 3
        await controller.change_page(0)
        assert controller.state.current_page == 1

    @pytest.mark.asyncio
    async def test_no_paging_before_first_search(self, make_controller, fake_openalex):
        controller = make_controller(total=45)

        await controller.change_page(2)

        assert fake_openalex.calls == []
        assert controller.state.current_page == 1

    @pytest.mark.asyncio
    async def test_sort_change_refetches_first_page(self, make_controller, fake_openalex):
        controller = make_controller(total=45)
        await controller.run_search()
        await controller.change_page(2)
        controller.toggle_selection("W21")

        await controller.change_sort("publication_date:asc")

        state = controller.state
        assert state.current_page == 1
        assert fake_openalex.calls[-1].sort == "publication_date:asc"
        assert fake_openalex.calls[-1].page == 1
        assert state.selected_ids == ["W21"]
        assert set(state.selected_works) == {f"W{i}" for i in range(20)}

    @pytest.mark.asyncio
    async def test_page_size_change_refetches_first_page(self, make_controller, fake_openalex):
        controller = make_controller(total=45)
        await controller.run_search()

        await controller.change_page_size(30)

        assert fake_openalex.pages_requested[-1] == (1, 30)
        assert len(controller.state.works) == 30
        assert controller.total_pages() == 2

    @pytest.mark.asyncio
    async def test_option_changes_before_search_do_not_fetch(self, make_controller, fake_openalex):
        controller = make_controller(total=45)

        await controller.change_sort("display_name:asc")
        await controller.change_page_size(50)

        assert fake_openalex.calls == []
        assert (controller.state.sort, controller.state.page_size) == ("display_name:asc", 50)

    @pytest.mark.asyncio
    async def test_invalid_options_raise(self, make_controller):
        controller = make_controller()
        with pytest.raises(ValueError):
            await controller.change_sort("relevance_score:desc")
        with pytest.raises(ValueError):
            await controller.change_page_size(25)


class _ManualService:
    """OpenAlex double whose responses are released by the test."""

    def __init__(self) -> None:
        self.pending: list[tuple[SearchQuery, asyncio.Future[WorksPage]]] = []

    async def fetch_page(self, *, client, query: SearchQuery) -> WorksPage:
        future: asyncio.Future[WorksPage] = asyncio.get_running_loop().create_future()
        self.pending.append((query, future))
        return await future


@pytest.mark.asyncio
async def test_stale_response_is_ignored(sample_journals) -> None:
    service = _ManualService()
    controller = SearchController(sample_journals, services=AppServices(openalex=service))

    first = asyncio.create_task(controller.run_search())
    while len(service.pending) < 1:
        await asyncio.sleep(0)
    second = asyncio.create_task(controller.run_search())
    while len(service.pending) < 2:
        await asyncio.sleep(0)

    service.pending[1][1].set_result(WorksPage(results=[Work(id="new")], count=1))
    await second
    service.pending[0][1].set_result(WorksPage(results=[Work(id="old")], count=9))
    await first

    assert _ids(controller.state.works) == ["new"]
    assert controller.state.total_count == 1
    assert "old" not in controller.state.selected_works


# ============================================================================
# Selection
# ============================================================================


class TestSelection:
    @pytest.mark.asyncio
    async def test_toggle_select_page_and_clear(self, make_controller):
        controller = make_controller(total=45)
        await controller.run_search()

        controller.toggle_selection("W1")
        controller.toggle_selection("W2")
        controller.toggle_selection("W1")
        assert controller.state.selected_ids == ["W2"]

        await controller.change_page(2)
        controller.select_current_page()
        assert controller.state.selected_ids == [f"W{i}" for i in range(20, 40)]

        controller.clear_selection()
        assert controller.state.selected_ids == []

    @pytest.mark.asyncio
    async def test_select_all_results(self, make_controller, fake_openalex):
        controller = make_controller(total=451)
        await controller.run_search()

        await controller.select_all_results()

        state = controller.state
        assert len(state.selected_ids) == 451
        assert state.selected_ids[:2] == ["W0", "W1"]
        assert len(state.selected_works) == 451
        assert not state.select_all_loading
        assert state.select_all_countdown == 0
        assert fake_openalex.pages_requested[1:] == [(1, 200), (2, 200), (3, 200)]

    @pytest.mark.asyncio
    async def test_select_all_respects_record_cap(self, make_controller):
        controller = make_controller(total=5000)
        await controller.run_search()

        await controller.select_all_results()

        assert len(controller.state.selected_ids) == 2000

    @pytest.mark.asyncio
    async def test_select_all_requires_a_search(self, make_controller, fake_openalex):
        controller = make_controller(total=45)

        await controller.select_all_results()

        assert fake_openalex.calls == []
        assert controller.state.selected_ids == []

    @pytest.mark.asyncio
    async def test_select_all_failure_keeps_selection(
        self, make_controller, fake_openalex, status_error
    ):
        controller = make_controller(total=451)
        await controller.run_search()
        controller.toggle_selection("W4")
        fake_openalex.fail_pages[2] = status_error(429)

        await controller.select_all_results()

        state = controller.state
        assert state.error_message == "OpenAlex error: 429"
        assert state.selected_ids == ["W4"]
        assert not state.select_all_loading

    @pytest.mark.asyncio
    async def test_select_all_keeps_its_query_when_inputs_change(
        self, make_controller, fake_openalex
    ):
        controller = make_controller(total=451)
        controller.set_search_inputs(keywords="innovation", year_from="2010")
        await controller.run_search()
        fake_openalex.gate = asyncio.Event()

        task = asyncio.create_task(controller.select_all_results())
        await _wait_for_calls(fake_openalex, 2)
        controller.set_search_inputs(keywords="finance", year_from="2020")
        controller.apply_filter(ft50=True)
        fake_openalex.gate.set()
        await task

        bulk_calls = fake_openalex.calls[1:]
        assert [query.page for query in bulk_calls] == [1, 2, 3]
        first = bulk_calls[0]
        assert first.keywords == "innovation"
        assert first.year_from == "2010"
        assert {(q.keywords, q.year_from, q.issns) for q in bulk_calls} == {
            (first.keywords, first.year_from, first.issns)
        }
        assert first.issns == fake_openalex.calls[0].issns
        assert len(controller.state.selected_ids) == 451

    @pytest.mark.asyncio
    async def test_cancel_select_all(self, make_controller, fake_openalex):
        controller = make_controller(total=451)
        await controller.run_search()
        controller.toggle_selection("W4")
        fake_openalex.gate = asyncio.Event()

        task = asyncio.create_task(controller.select_all_results())
        await _wait_for_calls(fake_openalex, 2)
        assert controller.state.select_all_loading
        assert controller.state.select_all_countdown > 0

        controller.cancel_select_all()
        await task

        state = controller.state
        assert not state.select_all_loading
        assert state.select_all_countdown == 0
        assert state.error_message == ""
        assert state.selected_ids == ["W4"]
        assert not controller.orchestrator.is_running(BulkKind.SELECT_ALL)


# ============================================================================
# Export
# ============================================================================


class TestExport:
    @pytest.mark.asyncio
    async def test_export_selected_in_selection_order(self, make_controller, export_dir):
        controller = make_controller(total=45)
        await controller.run_search()
        controller.toggle_selection("W5")
        controller.toggle_selection("W2")
        controller.toggle_selection("W999")

        path = controller.export_selected()

        assert path == export_dir / "openalex_selected.ris"
        content = path.read_text(encoding="utf-8")
        assert content.index("UR  - W5") < content.index("UR  - W2")
        assert _record_count(path) == 2
        assert controller.state.last_export_count == 2

    def test_export_selected_with_nothing_selected(self, make_controller, export_dir):
        controller = make_controller()
        assert controller.export_selected() is None
        assert not export_dir.exists()

    @pytest.mark.asyncio
    async def test_export_current_page(self, make_controller, export_dir):
        controller = make_controller(total=45)
        await controller.run_search()
        await controller.change_page(3)

        path = controller.export_current_page()

        assert path == export_dir / "openalex_page_3.ris"
        assert _record_count(path) == 5

    @pytest.mark.asyncio
    async def test_export_page_range_uses_one_remote_page(
        self, make_controller, fake_openalex, export_dir
    ):
        controller = make_controller(total=450, page_size=50)
        await controller.run_search()

        path = await controller.export_page_range("2", "4")

        assert path == export_dir / "openalex_pages_2-4.ris"
        assert fake_openalex.pages_requested[1:] == [(1, 200)]
        content = path.read_text(encoding="utf-8")
        assert _record_count(path) == 150
        assert content.startswith("TY  - JOUR\nTI  - Work 50\n")
        assert "UR  - W199\n" in content
        assert "UR  - W200\n" not in content
        state = controller.state
        assert not state.export_loading
        assert state.export_error == ""
        assert state.last_export_count == 150

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("start", "end"), [("0", "3"), ("4", "2"), ("abc", "2"), ("1", "10")])
    async def test_invalid_range_issues_no_requests(
        self, make_controller, fake_openalex, start, end
    ):
        controller = make_controller(total=450, page_size=50)
        await controller.run_search()

        path = await controller.export_page_range(start, end)

        assert path is None
        assert controller.state.export_error == INVALID_RANGE_MESSAGE
        assert len(fake_openalex.calls) == 1
        assert not controller.state.export_loading

    @pytest.mark.asyncio
    async def test_range_over_record_cap_is_rejected(self, make_controller, fake_openalex):
        controller = make_controller(total=10_000)
        await controller.run_search()

        assert await controller.export_page_range(1, 101) is None
        assert controller.state.export_error == INVALID_RANGE_MESSAGE
        assert len(fake_openalex.calls) == 1

    @pytest.mark.asyncio
    async def test_range_failure_sets_export_error(
        self, make_controller, fake_openalex, status_error, export_dir
    ):
        controller = make_controller(total=450, page_size=50)
        await controller.run_search()
        fake_openalex.fail_pages[1] = status_error(503)

        path = await controller.export_page_range(1, 2)

        assert path is None
        assert controller.state.export_error == "OpenAlex error: 503"
        assert not controller.state.export_loading
        assert not export_dir.exists()

    @pytest.mark.asyncio
    async def test_range_export_keeps_its_query_when_inputs_change(
        self, make_controller, fake_openalex, export_dir
    ):
        controller = make_controller(total=450, page_size=50)
        controller.set_search_inputs(keywords="innovation")
        await controller.run_search()
        fake_openalex.gate = asyncio.Event()

        task = asyncio.create_task(controller.export_page_range(1, 9))
        await _wait_for_calls(fake_openalex, 2)
        controller.set_search_inputs(keywords="finance")
        controller.apply_filter(ft50=True)
        fake_openalex.gate.set()
        path = await task

        assert path == export_dir / "openalex_pages_1-9.ris"
        bulk_calls = fake_openalex.calls[1:]
        assert [query.page for query in bulk_calls] == [1, 2, 3]
        assert {(q.keywords, q.issns) for q in bulk_calls} == {
            ("innovation", fake_openalex.calls[0].issns)
        }

    @pytest.mark.asyncio
    async def test_cancel_export(self, make_controller, fake_openalex, export_dir):
        controller = make_controller(total=450, page_size=50)
        await controller.run_search()
        fake_openalex.gate = asyncio.Event()

        task = asyncio.create_task(controller.export_page_range(1, 9))
        await _wait_for_calls(fake_openalex, 2)
        assert controller.state.export_loading

        controller.cancel_export()

        assert await task is None
        state = controller.state
        assert not state.export_loading
        assert state.export_countdown == 0
        assert state.export_error == ""
        assert not export_dir.exists()

    @pytest.mark.asyncio
    async def test_write_failure_sets_export_error(self, make_controller):
        controller = make_controller(total=450, page_size=50)
        await controller.run_search()

        with patch(
            "journal_search.controller.export_works", side_effect=OSError("read-only")
        ):
            path = await controller.export_page_range(1, 1)

        assert path is None
        assert controller.state.export_error == "Could not write export: read-only"
        assert not controller.state.export_loading


# ============================================================================
# Inputs and credential
# ============================================================================


def test_apply_filter_returns_filtered_journals(make_controller) -> None:
    controller = make_controller()

    journals = controller.apply_filter(utd24=True)
    assert [j.title for j in journals] == [
        "Journal of Finance",
        "Management Science",
        "INFORMS Journal on Computing",
    ]
    journals = controller.apply_filter(ranks={"3"})
    assert [j.title for j in journals] == ["INFORMS Journal on Computing"]
    assert controller.state.filter == FilterState(ranks={"3"}, utd24=True)


def test_save_credential_persists_trimmed_key(make_controller, _isolated_config_path) -> None:
    controller = make_controller()

    assert controller.save_credential("  abc  ") is True

    assert controller.state.api_key == "abc"
    assert controller.config.api_key == "abc"
    assert '"api_key": "abc"' in _isolated_config_path.read_text(encoding="utf-8")


def test_default_construction_uses_default_services(sample_journals) -> None:
    controller = SearchController(sample_journals, UserConfig(page_size=30))
    assert controller.state.page_size == 30
    assert controller.client is None
    assert hasattr(controller.services.openalex, "fetch_page")
