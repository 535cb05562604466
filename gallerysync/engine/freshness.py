"""
gallerysync.engine.freshness — Staleness clocks
================================================

Three independent clocks decide how much work a sync call does:

* **audit**  — existence-check every stored asset (expensive, rare).
* **poll**   — list the channel's messages and diff the id set (cheap).
* **full**   — run approval resolution even if the id set is unchanged,
  so reaction changes missed by the webhook still land eventually.

``force`` bypasses the poll and full clocks, ``validate`` the audit clock.
"""

from __future__ import annotations

from dataclasses import dataclass

from gallerysync.engine.models import SyncState


@dataclass(frozen=True, slots=True)
class Decision:
    audit: bool
    poll: bool
    full: bool

    @property
    def idle(self) -> bool:
        return not (self.audit or self.poll or self.full)


@dataclass(frozen=True, slots=True)
class FreshnessPolicy:
    poll_ttl: float
    full_sync_ttl: float
    audit_ttl: float

    def audit_due(self, state: SyncState, now: float) -> bool:
        return now - state.last_asset_audit >= self.audit_ttl

    def poll_due(self, state: SyncState, now: float) -> bool:
        return now - state.last_quick_check >= self.poll_ttl

    def full_sync_due(self, state: SyncState, now: float) -> bool:
        return now - state.last_full_sync >= self.full_sync_ttl

    def decide(
        self,
        state: SyncState,
        now: float,
        *,
        force: bool = False,
        validate: bool = False,
    ) -> Decision:
        """Evaluate the clocks in order: audit, poll, then the force flag."""
        audit = validate or self.audit_due(state, now)
        full = force or self.full_sync_due(state, now)
        poll = full or self.poll_due(state, now)
        return Decision(audit=audit, poll=poll, full=full)
