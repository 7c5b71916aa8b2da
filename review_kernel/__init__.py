"""
Gate Review Kernel

The workflow core of a split-fee recruiting marketplace: candidate/job
assignments pass a fixed sequence of review gates with

- A single authorization table shared by the engine and display layers
- Optimistic concurrency on every mutation
- An append-only, hash-chained gate history
- Atomic side effects (document commit, placement creation)
"""

__version__ = "0.1.0"
