# coursetutor/services.py
"""
Explicitly constructed service graph.

The HTTP layer receives one TutorServices instance instead of reaching for
module-level singletons, so tests can hand in fakes for every collaborator.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from coursetutor.config import METRICS_PATH, STORAGE_DIR
from coursetutor.llm.client import GenerationClient, build_openai_client
from coursetutor.memory.embedder import Embedder
from coursetutor.memory.store import DocumentStore
from coursetutor.observability.activity import ActivityLogger
from coursetutor.observability.metrics import MetricsTracker
from coursetutor.observability.posthog_client import PostHogClient
from coursetutor.workflow.tutor_chat import TutorChat


@dataclass
class TutorServices:
    store: DocumentStore
    embedder: Any
    generator: Any
    metrics: MetricsTracker
    posthog: PostHogClient = field(default_factory=PostHogClient)
    activity: Optional[ActivityLogger] = None
    tutor: Optional[TutorChat] = None

    def __post_init__(self):

        if self.activity is None:
            self.activity = ActivityLogger(posthog=self.posthog)

        if self.tutor is None:
            self.tutor = TutorChat(
                embedder=self.embedder,
                store=self.store,
                generator=self.generator,
                metrics=self.metrics,
            )

    @classmethod
    def from_environment(
        cls,
        storage_dir: str = STORAGE_DIR,
        metrics_path: str = METRICS_PATH,
    ) -> "TutorServices":

        openai_client = build_openai_client()
        metrics = MetricsTracker(path=metrics_path)

        return cls(
            store=DocumentStore(root=storage_dir),
            embedder=Embedder(
                client=openai_client,
                on_throttle=metrics.record_throttle_retry,
            ),
            generator=GenerationClient(
                client=openai_client,
                on_throttle=metrics.record_throttle_retry,
            ),
            metrics=metrics,
        )
