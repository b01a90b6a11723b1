"""Drive a document screen over every (company, project) filter combination.

For each combination the orchestrator resolves both dropdown values, applies
the filters, waits for the results (or the "no results" banner), maps the
table's columns and hands every page to a fresh :class:`RowProcessor`.

Failures are contained per combination: a missing dropdown option, a filter
error, a results timeout or a missing column skips that combination and the
loop moves on. Only a closed browser session stops the run.
"""
from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from playwright.sync_api import Error as PWError, TimeoutError as PWTimeout

from . import config
from .columns import build_column_map
from .dropdown import resolve_option_value
from .error_codes import ErrorCode
from .errors import FilterApplicationError, HarvestError, MissingRequiredColumns
from .fetcher import DocumentFetcher, DownloadResult
from .filters import FilterController
from .logging_utils import LogFn, _harvest_event
from .pagination import PageInfo, PaginationDriver
from .rows import RowProcessor
from .selectors import DocumentScreenSelectors
from .session import is_target_closed_error
from .telemetry import RunTelemetry
from .utils import log_line, reset_debug_dir, slugify_component, write_debug_artifact


@dataclass(frozen=True)
class FilterCombination:
    company_name: str
    project_name: str

    def __str__(self) -> str:
        return f"{self.company_name} | {self.project_name}"


def iter_combinations(
    companies: Sequence[str], projects: Sequence[str]
) -> Iterator[FilterCombination]:
    for company, project in itertools.product(companies, projects):
        yield FilterCombination(company, project)


class CombinationSkipped(HarvestError):
    """Internal signal: the current combination cannot be processed."""


def harvest_documents(
    session: Any,
    companies: Sequence[str],
    projects: Sequence[str],
    *,
    screen: DocumentScreenSelectors,
    output_root: Path,
    start_page: int = 1,
    end_page: Optional[int] = None,
    fetcher: Optional[DocumentFetcher] = None,
    telemetry: Optional[RunTelemetry] = None,
    log: LogFn = log_line,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """Harvest every downloadable row of ``screen`` for all combinations.

    Returns a summary with combination counts, skip reasons and the list of
    :class:`DownloadResult` objects, one per processed row.
    """

    output_root = Path(output_root)
    output_root.mkdir(parents=True, exist_ok=True)
    debug_dir = reset_debug_dir(output_root / "debug")
    fetcher = fetcher or DocumentFetcher(session, log=log)

    results: List[DownloadResult] = []
    skip_reasons: Dict[str, str] = {}
    combinations = list(iter_combinations(companies, projects))

    log(f"Navigating to {screen.url}")
    if not session.goto(screen.url, label=screen.output_dir_name):
        raise HarvestError(f"Could not open {screen.url}", error_code=ErrorCode.NETWORK)

    for combination in combinations:
        log(f"\n--- Processing combination: {combination} ---")
        _harvest_event(
            "combination",
            log=log,
            step="start",
            company=combination.company_name,
            project=combination.project_name,
        )
        try:
            combination_results = _process_combination(
                session,
                combination,
                screen=screen,
                output_root=output_root,
                debug_dir=debug_dir,
                start_page=start_page,
                end_page=end_page,
                fetcher=fetcher,
                telemetry=telemetry,
                log=log,
                sleep=sleep,
            )
            results.extend(combination_results)
        except CombinationSkipped as exc:
            skip_reasons[str(combination)] = exc.error_code
            log(f"[HARVEST][WARN] Skipping {combination}: {exc}")
            _harvest_event(
                "combination", log=log, step="skipped", combination=str(combination), error_code=exc.error_code
            )
            if telemetry is not None:
                telemetry.add("skipped", exc.error_code, {"combination": str(combination)})
        except PWError as exc:
            if is_target_closed_error(exc):
                log(f"[HARVEST][ERROR] Browser session lost during {combination}: {exc}")
                write_debug_artifact(
                    session, debug_dir, f"fatal_{slugify_component(str(combination))}"
                )
                raise
            _record_unexpected(combination, exc, skip_reasons, telemetry, log)
        except Exception as exc:  # noqa: BLE001
            _record_unexpected(combination, exc, skip_reasons, telemetry, log)

    downloaded = sum(1 for result in results if result)
    summary = {
        "screen": screen.output_dir_name,
        "combinations": len(combinations),
        "processed": len(combinations) - len(skip_reasons),
        "skipped": len(skip_reasons),
        "skip_reasons": skip_reasons,
        "downloaded": downloaded,
        "failed": len(results) - downloaded,
        "results": results,
    }
    log(
        f"Finished {screen.output_dir_name}: {summary['processed']}/{len(combinations)} combinations, "
        f"{downloaded} file(s) downloaded, {summary['failed']} failed."
    )
    return summary


def _record_unexpected(
    combination: FilterCombination,
    exc: BaseException,
    skip_reasons: Dict[str, str],
    telemetry: Optional[RunTelemetry],
    log: LogFn,
) -> None:
    code = getattr(exc, "error_code", None) or ErrorCode.INTERNAL
    skip_reasons[str(combination)] = code
    log(f"[HARVEST][ERROR] Error processing {combination}: {exc!r}")
    _harvest_event("error", log=log, phase="combination", combination=str(combination), error=repr(exc))
    if telemetry is not None:
        telemetry.add("error", code, {"combination": str(combination), "error": repr(exc)})


def _process_combination(
    session: Any,
    combination: FilterCombination,
    *,
    screen: DocumentScreenSelectors,
    output_root: Path,
    debug_dir: Path,
    start_page: int,
    end_page: Optional[int],
    fetcher: DocumentFetcher,
    telemetry: Optional[RunTelemetry],
    log: LogFn,
    sleep: Callable[[float], None],
) -> List[DownloadResult]:
    # The project list is loaded for the selected company, so it is only
    # resolved once the company filter is set.
    filters = FilterController(session, screen, log=log)
    company_value = resolve_option_value(
        session, screen.company_select, combination.company_name, config.DROPDOWN_TIMEOUT_SECONDS, log=log
    )
    if company_value is None:
        raise CombinationSkipped(
            f"Company {combination.company_name!r} not found in dropdown",
            error_code=ErrorCode.DROPDOWN_NOT_FOUND,
        )
    try:
        filters.select_company(company_value)
    except FilterApplicationError as exc:
        raise CombinationSkipped(str(exc), error_code=exc.error_code) from exc

    project_value = resolve_option_value(
        session, screen.project_select, combination.project_name, config.DROPDOWN_TIMEOUT_SECONDS, log=log
    )
    if project_value is None:
        raise CombinationSkipped(
            f"Project {combination.project_name!r} not found in dropdown",
            error_code=ErrorCode.DROPDOWN_NOT_FOUND,
        )

    try:
        filters.select_project(project_value)
        filters.search()
    except FilterApplicationError as exc:
        raise CombinationSkipped(str(exc), error_code=exc.error_code) from exc

    slug = slugify_component(f"{combination.company_name}_{combination.project_name}")
    write_debug_artifact(session, debug_dir, f"debug_{slug}")

    try:
        session.wait_for(
            screen.results_or_empty, state="visible", timeout_seconds=config.RESULTS_TIMEOUT_SECONDS
        )
    except PWTimeout as exc:
        raise CombinationSkipped(
            "Timed out waiting for the results table", error_code=ErrorCode.RESULTS_TIMEOUT
        ) from exc

    banner = session.text_of(screen.no_results) if session.exists(screen.no_results) else None
    if banner and screen.no_results_phrase.lower() in banner.lower():
        raise CombinationSkipped("No documents found", error_code=ErrorCode.NO_RESULTS)

    try:
        column_map = build_column_map(session, screen.header_row, screen.required_columns, log=log)
    except MissingRequiredColumns as exc:
        raise CombinationSkipped(str(exc), error_code=exc.error_code) from exc

    company_dir = output_root / slugify_component(combination.company_name)
    processor = RowProcessor(
        session,
        screen,
        column_map,
        fetcher=fetcher,
        company_dir=company_dir,
        group_label=combination.project_name,
        sleep=sleep,
        telemetry=telemetry,
        context=str(combination),
        log=log,
    )

    def _process_page(info: PageInfo) -> None:
        processor.page_label = f" | p. {info.cursor.current_page} of {info.cursor.total_pages}"
        for index in range(info.row_count):
            if not processor.process_row(index, info.row_count):
                log(f"[ROW][ERROR] Giving up on row {index + 1}; moving to the next row.")

    PaginationDriver(session, screen, start_page=start_page, end_page=end_page, log=log).for_each_page(
        _process_page
    )
    return processor.results


__all__ = [
    "FilterCombination",
    "CombinationSkipped",
    "iter_combinations",
    "harvest_documents",
]
