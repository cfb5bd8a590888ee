from __future__ import annotations

from typing import Optional


class UsageCounter:
    """Running totals of model calls and token usage, shared by every model chain of a run.

    Cache hits count as calls but add no tokens or cost.
    """

    def __init__(self):
        self.calls = 0
        self.cache_hits = 0
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
        self.cost_usd = 0.0

    def add(self, usage: Optional[dict], cached: bool = False) -> None:
        self.calls += 1
        if cached:
            self.cache_hits += 1
            return
        usage = usage or {}
        self.prompt_tokens += usage.get("prompt_tokens") or 0
        self.completion_tokens += usage.get("completion_tokens") or 0
        self.total_tokens += usage.get("total_tokens") or 0
        self.cost_usd += usage.get("cost_usd") or 0

    def snapshot(self) -> dict:
        return {
            "calls": self.calls,
            "cache_hits": self.cache_hits,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": self.cost_usd,
        }


def compute_stats(attempts: list) -> dict:
    """Summarise call-log records, overall and per view."""

    def make_bucket(items: list) -> dict:
        ok = [a for a in items if a.get("status") == "ok"]
        timeout = [a for a in items if a.get("status") == "timeout"]
        error = [a for a in items if a.get("status") == "error"]

        denom = len(items)
        ok_latencies = [a["latency_ms"] for a in ok if a.get("latency_ms") is not None]

        def usage_sum(field: str):
            return sum((a.get("usage") or {}).get(field, 0) or 0 for a in items)

        return {
            "attempts_total": len(items),
            "calls_ok": len(ok),
            "calls_timeout": len(timeout),
            "calls_error": len(error),
            "valid_rate": len(ok) / denom if denom > 0 else 0.0,
            "timeout_rate": len(timeout) / denom if denom > 0 else 0.0,
            "error_rate": len(error) / denom if denom > 0 else 0.0,
            "avg_latency_ms_ok": sum(ok_latencies) / len(ok_latencies) if ok_latencies else 0.0,
            "sum_cost_usd": usage_sum("cost_usd"),
            "prompt_tokens": usage_sum("prompt_tokens"),
            "completion_tokens": usage_sum("completion_tokens"),
            "total_tokens": usage_sum("total_tokens"),
        }

    per_view = {}
    for a in attempts:
        view = a.get("view_name")
        if view:
            per_view.setdefault(view, []).append(a)

    return {
        "overall": make_bucket(attempts),
        "per_view": {k: make_bucket(v) for k, v in per_view.items()},
    }
