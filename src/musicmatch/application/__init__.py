"""Application layer - orchestration of domain logic."""
