"""
Contracts Kernel

The persistence and state-machine core of the contract lifecycle engine:
- Version-checked contract writes with bounded retry
- A closed status lifecycle with validated transitions
- Best-effort, append-only audit trail
- Structured JSON logging and typed errors
"""

__version__ = "0.1.0"
