"""
signals package

Implements the trade-signal relay core:
- Signal / journal record types and their persisted form
- Lifecycle engine (hit / stop-loss / take-profit / cancel, R-multiples)
- Inbound parsing and outbound message rendering
"""
