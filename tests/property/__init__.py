"""
GATHERLY - Property-Based Testing Suite

Property-based testing using Hypothesis for the bootstrap and health
invariants over arbitrary subsystem mixes.
"""
