"""CI/CD deployment gating."""

from .validation_gate import APPROVED, BLOCKED, DeploymentGate, generate_gate_report

__all__ = [
    "APPROVED",
    "BLOCKED",
    "DeploymentGate",
    "generate_gate_report",
]
