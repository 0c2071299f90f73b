"""Code Helper: onboarding gate and task/session continuity."""

__version__ = "0.1.0"
