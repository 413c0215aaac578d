"""Health check command support for the drive-tokens CLI."""

from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Callable, Iterable, List, Sequence

from drive_tokens.infrastructure.connection_manager import ConnectionManager

DEFAULT_TIMEOUT_SECONDS = 3.0


@dataclass
class CheckResult:
    """Represents a single dependency check outcome."""

    name: str
    ok: bool
    detail: str


def _format_duration(start: float) -> str:
    elapsed = perf_counter() - start
    if elapsed < 0.001:
        return "<1ms"
    return f"{int(elapsed * 1000)}ms"


def _format_exception(exc: Exception) -> str:
    message = str(exc).strip()
    if not message:
        message = exc.__class__.__name__
    return message.splitlines()[0]


def check_database(manager: ConnectionManager, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> CheckResult:
    start = perf_counter()
    try:
        with manager.connection(timeout=timeout) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
    except Exception as exc:  # reported through the result
        return CheckResult(name="DB", ok=False, detail=_format_exception(exc))
    return CheckResult(name="DB", ok=True, detail=_format_duration(start))


def run_status_checks(
    manager: ConnectionManager,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    checks: Sequence[Callable[[], CheckResult]] | None = None,
) -> List[CheckResult]:
    """Executes dependency checks, allowing override for testing."""

    if checks is None:
        checks = (lambda: check_database(manager, timeout),)

    return [check() for check in checks]


def render_results(results: Iterable[CheckResult]) -> str:
    lines = []
    for result in results:
        status = "OK" if result.ok else "FAIL"
        lines.append(f"{result.name:<8} {status:<4} {result.detail}")
    return "\n".join(lines)
