"""
In-memory metrics for pipeline runs and stage calls.

Counters are dotted names grouped by their first segment:
  runs.started / runs.completed / runs.failed
  stages.<stage>    provider calls per stage invocation
  errors.<stage>    calls that ended in an exception

Latency is sampled per stage (ms, last MAX_SAMPLES). Everything resets on
restart; /metrics exposes get_snapshot().
"""

import time
import threading
from collections import defaultdict, deque
from typing import Dict

MAX_SAMPLES = 100
MAX_ERRORS = 50

_lock = threading.Lock()
_counters: Dict[str, int] = defaultdict(int)
_latency: Dict[str, deque] = defaultdict(lambda: deque(maxlen=MAX_SAMPLES))
_errors: deque = deque(maxlen=MAX_ERRORS)
_started_at = time.time()


def inc_counter(name: str, amount: int = 1):
    with _lock:
        _counters[name] += amount


def record_latency(name: str, duration_ms: float):
    with _lock:
        _latency[name].append(duration_ms)


def record_error(stage: str, error_type: str, message: str, run_id: str = ""):
    """Keep the failure for the recent-errors view (message truncated)."""
    with _lock:
        _errors.append({
            "timestamp": time.time(),
            "run_id": run_id,
            "stage": stage,
            "error_type": error_type,
            "message": message[:300],
        })


def _summarize(samples) -> dict:
    ordered = sorted(samples)
    n = len(ordered)
    return {
        "count": n,
        "avg": sum(ordered) / n,
        "p50": ordered[n // 2],
        "p95": ordered[min(n - 1, int(n * 0.95))],
    }


def _stage_view() -> dict:
    stages = {}
    for name, calls in _counters.items():
        group, _, stage = name.partition(".")
        if group != "stages":
            continue
        failures = _counters.get(f"errors.{stage}", 0)
        stages[stage] = {
            "calls": calls,
            "errors": failures,
            "error_rate": round(failures / calls * 100, 2) if calls else 0.0,
            "latency_ms": _summarize(_latency[name]) if _latency.get(name) else None,
        }
    return stages


def get_snapshot() -> dict:
    now = time.time()
    with _lock:
        by_type: Dict[str, int] = defaultdict(int)
        for err in _errors:
            by_type[f"{err['stage']}:{err['error_type']}"] += 1

        return {
            "timestamp": now,
            "uptime_seconds": now - _started_at,
            "counters": dict(_counters),
            "stages": _stage_view(),
            "error_patterns": dict(by_type),
            "recent_errors": list(_errors)[-10:],
        }


def reset():
    with _lock:
        _counters.clear()
        _latency.clear()
        _errors.clear()
