"""HR back-office workflow engine: appraisals, onboarding and leave."""

__version__ = "1.0.0"
