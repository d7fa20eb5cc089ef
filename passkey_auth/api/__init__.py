"""HTTP surface for the ceremony orchestrator."""
