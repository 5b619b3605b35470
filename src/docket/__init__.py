"""docket: batch planning and a validation-gated task queue for documentation agents."""

__version__ = "0.1.0"
