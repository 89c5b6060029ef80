"""
Gateway Module for the SUT Compliance Engine.

Side-effecting collaborators: the LLM used as rule-extraction oracle and
the rule snapshot stores.
"""

from sut_compliance.gateways.base import (
    GatewayError,
    MalformedResponseError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from sut_compliance.gateways.llm_gateway import (
    LLMGateway,
    LLMRequest,
    LLMResponse,
    get_llm_gateway,
    reset_llm_gateway,
)
from sut_compliance.gateways.snapshot_store import (
    FileSnapshotStore,
    MinioSnapshotStore,
    SnapshotStore,
    create_snapshot_store,
)

__all__ = [
    # Errors
    "GatewayError",
    "MalformedResponseError",
    "ProviderAuthenticationError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    # LLM
    "LLMGateway",
    "LLMRequest",
    "LLMResponse",
    "get_llm_gateway",
    "reset_llm_gateway",
    # Snapshots
    "FileSnapshotStore",
    "MinioSnapshotStore",
    "SnapshotStore",
    "create_snapshot_store",
]
