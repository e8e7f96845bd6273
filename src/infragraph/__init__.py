"""Declarative resource graph applier for AWS-style infrastructure."""

__version__ = "0.1.0"
