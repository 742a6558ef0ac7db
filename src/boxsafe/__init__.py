"""
boxsafe — package root.

Autonomous generate/execute/validate/iterate loop for model-written code. A model
produces an artifact from a prompt, the artifact runs inside a bounded workspace,
the outcome is scored by a layered rubric, and failures are fed back as the next
prompt until the run succeeds or its iteration budget is spent.

Importing the package has no side effects: no config loading, no logging setup.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
