import json
import logging
import os
import threading
from typing import Any, Dict, List

from coursetutor.config import METRICS_PATH

logger = logging.getLogger(__name__)

# Keeps the persisted file bounded
_MAX_LATENCIES = 1000


class MetricsTracker:

    def __init__(self, path: str = METRICS_PATH):

        self._path = path
        self._lock = threading.Lock()

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self._metrics: Dict[str, Any] = {

            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,

            "total_latency": 0.0,
            "avg_latency": 0.0,

            "chunks_ingested": 0,
            "chat_streams": 0,
            "throttled_requests": 0,
            "throttle_retries": 0,

            "latencies": []

        }

        self._load()


    def _load(self):

        if not os.path.exists(self._path):
            return

        try:

            with open(self._path, "r") as f:
                data = json.load(f)

            self._metrics.update(data)

        except (OSError, ValueError) as e:

            logger.warning(
                "Metrics file unreadable, starting fresh",
                extra={"path": self._path, "error": str(e)},
            )


    def _save(self):

        with open(self._path, "w") as f:
            json.dump(self._metrics, f, indent=2)


    def record_success(self, latency: float):

        with self._lock:

            self._metrics["total_requests"] += 1
            self._metrics["successful_requests"] += 1
            self._metrics["total_latency"] += latency

            self._metrics["avg_latency"] = (
                self._metrics["total_latency"]
                / self._metrics["total_requests"]
            )

            self._metrics["latencies"].append(latency)
            self._metrics["latencies"] = self._metrics["latencies"][-_MAX_LATENCIES:]

            self._save()


    def record_failure(self):

        with self._lock:

            self._metrics["total_requests"] += 1
            self._metrics["failed_requests"] += 1

            self._save()


    def record_ingestion(self, chunks: int):

        with self._lock:

            self._metrics["chunks_ingested"] += chunks

            self._save()


    def record_chat_stream(self):

        with self._lock:

            self._metrics["chat_streams"] += 1

            self._save()


    def record_throttled(self):

        with self._lock:

            self._metrics["throttled_requests"] += 1

            self._save()


    def record_throttle_retry(self, attempt: int, delay: float):
        """Count one backoff before retrying a rate-limited upstream call."""

        with self._lock:

            self._metrics["throttle_retries"] += 1

            self._save()


    def get_metrics(self) -> Dict[str, Any]:

        with self._lock:
            snapshot = dict(self._metrics)

        snapshot["p50_latency"] = self.get_latency_percentile(50)
        snapshot["p95_latency"] = self.get_latency_percentile(95)

        return snapshot


    def get_latency_percentile(self, percentile: float) -> float:

        latencies: List[float] = self._metrics.get("latencies", [])

        if not latencies:
            return 0.0

        sorted_latencies = sorted(latencies)

        index = int(len(sorted_latencies) * percentile / 100)

        index = min(index, len(sorted_latencies) - 1)

        return sorted_latencies[index]
