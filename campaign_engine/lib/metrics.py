"""
Prometheus-compatible metrics for the campaign control loop.

Tracks:
- Ticks run and campaigns examined per tick outcome
- Occurrences fired (confirmed executions) and execution failures
- Automation evaluations and the levers they pulled
- Audience resolutions and lookup failures

Usage:
    from campaign_engine.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_occurrences(frequency="weekly")
    metrics.increment_adjustments(lever="tone")

    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style metrics collector for the campaign engine.

    Counters:
    - campaign_ticks_total: Ticks executed
    - campaign_tick_outcomes_total: Per-campaign tick outcome (labels: outcome)
    - campaign_occurrences_total: Confirmed occurrences (labels: frequency)
    - campaign_execution_failures_total: Unconfirmed executions (labels: reason)
    - campaign_evaluations_total: Automation evaluations (labels: result)
    - campaign_adjustments_total: Levers pulled (labels: lever)
    - campaign_audience_resolutions_total: Resolutions (labels: status)

    Thread-safe for concurrent increments.
    """

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        sorted_labels = tuple(sorted(labels.items()))
        return (metric_name, sorted_labels)

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        """Thread-safe increment of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def _get_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """Get current value of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    # ===== Tick Metrics =====

    def increment_ticks(self, amount: int = 1):
        """Increment executed ticks counter."""
        self._increment("campaign_ticks_total", {}, amount)

    def increment_tick_outcome(self, outcome: str, amount: int = 1):
        """
        Increment per-campaign tick outcome counter.

        Args:
            outcome: fired, completed, not_due, skipped_locked, failed
            amount: Increment amount (default 1)
        """
        self._increment("campaign_tick_outcomes_total", {"outcome": outcome.lower()}, amount)

    # ===== Execution Metrics =====

    def increment_occurrences(self, frequency: str, amount: int = 1):
        """Increment confirmed occurrences counter."""
        self._increment("campaign_occurrences_total", {"frequency": frequency.lower()}, amount)

    def increment_execution_failures(self, reason: str = "unknown", amount: int = 1):
        """Increment unconfirmed execution counter."""
        self._increment("campaign_execution_failures_total", {"reason": reason.lower()}, amount)

    # ===== Automation Metrics =====

    def increment_evaluations(self, result: str, amount: int = 1):
        """
        Increment automation evaluations counter.

        Args:
            result: adjusted, underperforming, healthy, skipped
            amount: Increment amount
        """
        self._increment("campaign_evaluations_total", {"result": result.lower()}, amount)

    def increment_adjustments(self, lever: str, amount: int = 1):
        """Increment adjustments counter for a lever (frequency, tone, targeting, timing)."""
        self._increment("campaign_adjustments_total", {"lever": lever.lower()}, amount)

    # ===== Audience Metrics =====

    def increment_resolutions(self, status: str = "ok", amount: int = 1):
        """Increment audience resolution counter (status: ok, empty, error)."""
        self._increment("campaign_audience_resolutions_total", {"status": status.lower()}, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self._get_help_text(metric_name)
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                if labels_dict:
                    labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                    output_lines.append(f"{metric_name}{{{labels_str}}} {value}")
                else:
                    output_lines.append(f"{metric_name} {value}")

            output_lines.append("")

        return "\n".join(output_lines)

    def _get_help_text(self, metric_name: str) -> str:
        """Get help text for metric."""
        help_texts = {
            "campaign_ticks_total": "Total number of control-loop ticks executed",
            "campaign_tick_outcomes_total": "Per-campaign outcome of each tick",
            "campaign_occurrences_total": "Total number of confirmed campaign occurrences",
            "campaign_execution_failures_total": "Total number of unconfirmed executions",
            "campaign_evaluations_total": "Total number of automation policy evaluations",
            "campaign_adjustments_total": "Total number of automation levers pulled",
            "campaign_audience_resolutions_total": "Total number of audience resolutions",
        }
        return help_texts.get(metric_name, "Counter metric")

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """
        Get current value of a specific counter.

        Args:
            metric_name: Name of the metric
            labels: Label filters

        Returns:
            Current counter value
        """
        return self._get_value(metric_name, labels)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Get global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    global _metrics_collector
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
