"""Outdoor-time sync infrastructure for Daylight.

Modules:
    fhir_client  POST of one batch Bundle to the FHIR endpoint
    pipeline     Batch upload with per-entry reconciliation
    backfill     Daily aggregate back-fill over the recent past
    scheduler    Periodic and foreground triggers with a deadline
"""
