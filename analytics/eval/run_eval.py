"""
Evaluation harness -- runs eval_questions.jsonl through the assistant
and generates analytics/reports/eval_report.md.

Checks:
  - Query type correctness  (extracted query_type matches expected)
  - Metric correctness      (aggregate metric matches expected)
  - Guard correctness       (revenue / invalid questions rejected with the expected code)
  - Answer produced         (full pipeline returned an answer, needs a seeded DB)
  - Latency                 (end-to-end ms)
"""
from __future__ import annotations

import json
import sys
import datetime
from pathlib import Path
from typing import Any

EVAL_PATH = Path(__file__).resolve().parent / "eval_questions.jsonl"
REPORT_PATH = Path(__file__).resolve().parents[1] / "reports" / "eval_report.md"


def _load_questions() -> list[dict[str, Any]]:
    lines = EVAL_PATH.read_text().splitlines()
    return [json.loads(line) for line in lines if line.strip()]


def _run_one(q: dict[str, Any]) -> dict[str, Any]:
    """Run a single question through extraction, validation and the full pipeline."""
    from src.assistant.errors import AssistantError
    from src.assistant.extractor import extract_intent
    from src.assistant.intent import CallerContext
    from src.assistant.service import ask
    from src.governance.validator import validate_intent
    from src.core.utils import timer

    question = q["question"]
    caller = CallerContext(user_id="eval", role="sales", ownership_id=q.get("ownership_id", 1))

    intent = extract_intent(question, mode="mock")
    verdict = validate_intent(intent, question)
    shown = verdict.intent or intent

    type_ok = shown.query_type == q.get("expected_query_type", shown.query_type)
    metric_ok = shown.metric == q.get("expected_metric", shown.metric)

    answer = ""
    source = ""
    error_code = None if verdict.valid else verdict.error_code
    error = verdict.error
    with timer() as t:
        try:
            result = ask(question, caller=caller, mode="mock")
            answer, source = result.answer, result.source
        except AssistantError as exc:
            error_code = error_code or exc.code
            error = error or exc.message

    expected_error = q.get("expected_error")
    if expected_error:
        guard_ok = error_code == expected_error
        success = guard_ok and type_ok
    else:
        guard_ok = error_code is None
        success = guard_ok and type_ok and metric_ok and bool(answer)

    return {
        "question": question,
        "error": error,
        "error_code": error_code,
        "latency_ms": t["elapsed_ms"],
        "type_ok": type_ok,
        "metric_ok": metric_ok,
        "guard_ok": guard_ok,
        "answered": bool(answer),
        "answer": answer,
        "source": source,
        "success": success,
    }


def _rate(hits: int, total: int) -> str:
    pct = (hits / total * 100) if total else 0
    return f"**{pct:.0f}%** ({hits}/{total})"


def _percentile(values: list[int], q: float) -> int:
    if not values:
        return 0
    ordered = sorted(values)
    return ordered[min(int(len(ordered) * q), len(ordered) - 1)]


def _table(header: list[str], rows: list[list[Any]]) -> list[str]:
    out = ["| " + " | ".join(header) + " |", "|" + "|".join("---" for _ in header) + "|"]
    out += ["| " + " | ".join(str(c) for c in row) + " |" for row in rows]
    return out + [""]


def _generate_report(results: list[dict[str, Any]], questions: list[dict[str, Any]]) -> str:
    """Render results as Markdown: summary, per-query-type, latency, failures."""
    answerable = [r for r, q in zip(results, questions) if not q.get("expected_error")]
    guarded = [r for r, q in zip(results, questions) if q.get("expected_error")]
    latencies = [r["latency_ms"] for r in results]

    lines = [
        "# CRM Assistant Evaluation",
        "",
        f"> {datetime.datetime.now():%Y-%m-%d %H:%M}  |  {len(results)} questions  |  extractor: `mock`",
        "",
        "## Summary",
        "",
    ]
    lines += _table(["Check", "Result"], [
        ["Passed", _rate(sum(r["success"] for r in results), len(results))],
        ["query_type matched", _rate(sum(r["type_ok"] for r in results), len(results))],
        ["metric matched", _rate(sum(r["metric_ok"] for r in answerable), len(answerable))],
        ["Answer produced", _rate(sum(r["answered"] for r in answerable), len(answerable))],
        ["Rejected with expected code", _rate(sum(r["guard_ok"] for r in guarded), len(guarded))],
    ])

    by_type: dict[str, list[dict[str, Any]]] = {}
    for r, q in zip(results, questions):
        by_type.setdefault(q.get("expected_query_type", "?"), []).append(r)
    lines += ["## By query type", ""]
    lines += _table(["query_type", "Passed"], [
        [qt, _rate(sum(r["success"] for r in rs), len(rs))] for qt, rs in sorted(by_type.items())
    ])

    lines += ["## Latency (ms)", ""]
    lines += _table(["mean", "p50", "p95", "max"], [[
        f"{sum(latencies) / len(latencies):.0f}" if latencies else 0,
        _percentile(latencies, 0.5),
        _percentile(latencies, 0.95),
        max(latencies, default=0),
    ]])

    lines += ["## Questions", ""]
    lines += _table(["#", "Question", "Type", "Metric", "Error code", "Source", "ms", "Pass"], [
        [
            i,
            truncate_question(r["question"]),
            "ok" if r["type_ok"] else "WRONG",
            "ok" if r["metric_ok"] else "WRONG",
            r["error_code"] or "",
            r["source"] or "",
            r["latency_ms"],
            "yes" if r["success"] else "NO",
        ]
        for i, r in enumerate(results, 1)
    ])

    failures = [(i, r) for i, r in enumerate(results, 1) if not r["success"]]
    lines += ["## Failures", ""]
    if not failures:
        lines += ["None.", ""]
    for i, r in failures:
        lines += [f"**#{i}** {r['question']}", ""]
        if r.get("error"):
            lines.append(f"- {r['error_code']}: `{r['error']}`")
        if r.get("answer"):
            lines.append(f"- answer: {r['answer']}")
        lines.append("")

    return "\n".join(lines)


def truncate_question(text: str, limit: int = 55) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def run():
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")  # type: ignore[attr-defined]

    questions = _load_questions()
    print(f"Evaluating {len(questions)} questions\n")

    results = []
    for i, q in enumerate(questions, 1):
        r = _run_one(q)
        mark = "pass" if r["success"] else "FAIL"
        print(f"  {i:2d}. {mark}  {truncate_question(r['question'], 60):<63} {r['latency_ms']:>5d} ms")
        results.append(r)

    REPORT_PATH.parent.mkdir(parents=True, exist_ok=True)
    REPORT_PATH.write_text(_generate_report(results, questions), encoding="utf-8")

    passed = sum(r["success"] for r in results)
    print(f"\n{passed}/{len(results)} passed -- report: {REPORT_PATH}")
    return 0 if passed == len(results) else 1


if __name__ == "__main__":
    sys.exit(run())
