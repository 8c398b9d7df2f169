"""Application layer - coordinators, ports and workflow primitives."""
