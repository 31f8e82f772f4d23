"""
Sandbox Module

Isolated execution of user-submitted pattern solutions.

This module provides:
- One child interpreter per run (no state survives between runs)
- Source compilation and diagnostics (transpile capability)
- Import allowlisting and blocked builtins inside the child
- JSON-lines protocol carrying captured logs and the final result
- Best-effort CPU and memory limits on POSIX

WARNING: This sandbox is NOT cryptographically secure. The wall-clock
deadline enforced by the run coordinator is the only hard guarantee.
"""

__version__ = "0.1.0"
