"""Consensus resolution over remote time observations."""

from .resolver import (
    ConsensusResolver,
    HostObservation,
    OfflineError,
    PairwiseInterval,
    pairwise_intervals,
    select_consensus,
)

__all__ = [
    "ConsensusResolver",
    "HostObservation",
    "OfflineError",
    "PairwiseInterval",
    "pairwise_intervals",
    "select_consensus",
]
