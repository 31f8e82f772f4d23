"""
Workbench Module

Configuration and command line front end.

This module provides:
- YAML-based configuration loading
- CLI for validating, running and verifying pattern solutions
- Reference rendering and catalog checks
"""

__version__ = "0.1.0"
