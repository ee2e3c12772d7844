"""Student Risk Scorer: configurable multi-factor student risk scoring."""

__version__ = "1.0.0"
