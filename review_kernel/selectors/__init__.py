"""Read-only selectors."""

from review_kernel.selectors.assignment_selector import AssignmentSelector

__all__ = ["AssignmentSelector"]
