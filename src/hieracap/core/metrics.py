# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Counters for the engine's observability hooks.

Renders Prometheus text format without a prometheus_client dependency.

Counters exported:
- hieracap_decisions_total{outcome}: ADP outcomes (allow or a deny reason)
- hieracap_narrow_total: key primitive narrow invocations
- hieracap_singleflight_total{role}: leader / shared delegate calls
- hieracap_mints_total: root capabilities minted
- hieracap_delegations_total: derived capabilities minted
- hieracap_revocations_total{kind}: revocation entries recorded
- hieracap_reaped_total: revocation entries garbage-collected
- hieracap_store_expired_total: capabilities dropped from the store on expiry
"""

from __future__ import annotations

import threading
from collections import defaultdict

LabelSet = tuple[tuple[str, str], ...]

_HELP = {
    "hieracap_decisions_total": "Access decisions by outcome",
    "hieracap_narrow_total": "Key primitive narrow invocations",
    "hieracap_singleflight_total": "Delegate calls by single-flight role",
    "hieracap_mints_total": "Root capabilities minted",
    "hieracap_delegations_total": "Derived capabilities minted",
    "hieracap_revocations_total": "Revocation entries recorded by kind",
    "hieracap_reaped_total": "Revocation entries garbage-collected",
    "hieracap_store_expired_total": "Capabilities dropped from the store on expiry",
}


def _labels(labels: dict[str, str]) -> LabelSet:
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


class EngineMetrics:
    """Thread-safe labelled counters.

    One instance is shared by every component of an engine so a single
    ``render_prometheus()`` call reports the whole engine.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, dict[LabelSet, int]] = defaultdict(lambda: defaultdict(int))

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        with self._lock:
            self._counters[name][_labels(labels)] += amount

    def value(self, name: str, **labels: str) -> int:
        """Current value of one labelled counter (0 if never incremented)."""
        with self._lock:
            series = self._counters.get(name)
            if series is None:
                return 0
            return series.get(_labels(labels), 0)

    def total(self, name: str) -> int:
        """Sum of a counter across all label sets."""
        with self._lock:
            return sum(self._counters.get(name, {}).values())

    def snapshot(self) -> dict[str, dict[LabelSet, int]]:
        with self._lock:
            return {name: dict(series) for name, series in self._counters.items()}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()

    def render_prometheus(self) -> str:
        """Render all counters in Prometheus text exposition format."""
        lines: list[str] = []
        for name, series in sorted(self.snapshot().items()):
            lines.append(f"# HELP {name} {_HELP.get(name, name)}")
            lines.append(f"# TYPE {name} counter")
            for labelset, count in sorted(series.items()):
                if labelset:
                    rendered = ",".join(f'{k}="{v}"' for k, v in labelset)
                    lines.append(f"{name}{{{rendered}}} {count}")
                else:
                    lines.append(f"{name} {count}")
        return "\n".join(lines) + "\n"
