"""Run pipeline: preflight, pass orchestration, gating."""
