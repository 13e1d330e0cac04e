"""
Read-back verification of deterministic payloads.

The expected bytes are a replay of ``PayloadFactory.deterministic_payload``
for the same key, field and seed; nothing is re-randomized at read time.
"""
from __future__ import annotations

from typing import Mapping

from iotbench.domain.models import RecordKey, VerificationOutcome
from iotbench.workload.synthesizer import PayloadFactory


class IntegrityVerifier:
    def __init__(self, payloads: PayloadFactory, field_length: int) -> None:
        self.payloads = payloads
        self.field_length = field_length

    def verify(self, key: RecordKey, cells: Mapping[str, bytes]) -> VerificationOutcome:
        """
        Compare every returned field against its replayed payload.

        An empty result is ``MISSING``; any differing field is ``MISMATCH``.
        """
        if not cells:
            return VerificationOutcome.MISSING
        for field, stored in cells.items():
            if stored is None:
                return VerificationOutcome.MISSING
            expected = self.payloads.deterministic_payload(key, field, self.field_length)
            if bytes(stored) != expected:
                return VerificationOutcome.MISMATCH
        return VerificationOutcome.MATCH


__all__ = ["IntegrityVerifier"]
