"""Verification engine — sequencing, outcome arbitration and orchestration.

Modules:

* ``sequencer`` — ``InteractionSequencer`` runs a target's steps in order.
* ``actions`` — registry of named custom actions for ``custom`` steps.
* ``arbiter`` — ``OutcomeArbiter`` races success/failure signals.
* ``orchestrator`` — ``RunOrchestrator`` runs targets sequentially with
  per-target failure isolation and guaranteed session release.
"""

from siteverify.verification.arbiter import OutcomeArbiter
from siteverify.verification.orchestrator import RunOrchestrator
from siteverify.verification.sequencer import InteractionSequencer

__all__ = ["InteractionSequencer", "OutcomeArbiter", "RunOrchestrator"]
