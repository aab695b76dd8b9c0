"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the loan engine.

The tests are organized by invariant:
1. conservation.py - Value is never created or destroyed; the loan core is solvent
2. atomicity.py - A failing operation leaves no trace
3. reentrancy.py - Entry points cannot be re-entered from a transfer callback

These tests use hypothesis for property-based testing.
"""
