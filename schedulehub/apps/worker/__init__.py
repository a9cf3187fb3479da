"""Background worker: notification delivery, ATS sync, reconciliation and escalation."""
