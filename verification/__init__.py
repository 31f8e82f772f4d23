"""
Verification Module

Run lifecycle and grading of submitted pattern solutions.

This module implements the verification pipeline:
- Static validation of solution source
- Run coordination (run identity, deadline, cancellation)
- Line-level output comparison against the reference pattern
- Orchestration of validate -> execute -> generate -> diff
"""

__version__ = "0.1.0"
