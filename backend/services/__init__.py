"""
Bank Correspondence Hub - Services Package

Dispatch & state engine components, persistence and background workers.
"""
