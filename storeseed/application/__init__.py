"""Application layer module.

Contains the provisioning and teardown pipelines and the helpers they
share (progress channel, batching, reconciliation, run state).
"""

from storeseed.application.progress import ProgressChannel, stream_events
from storeseed.application.provisioning_service import (
    ProvisioningPipeline,
    ProvisioningSummary,
)
from storeseed.application.teardown_service import TeardownPipeline, TeardownSummary

__all__ = [
    "ProgressChannel",
    "ProvisioningPipeline",
    "ProvisioningSummary",
    "TeardownPipeline",
    "TeardownSummary",
    "stream_events",
]
