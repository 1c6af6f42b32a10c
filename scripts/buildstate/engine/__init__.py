"""
Build Pipeline State Engine: document-backed task state machine.

Ticket: 0091_document_state_engine
Design: DESIGN.md

This package is the engine core. It reads and rewrites a small set of shared
Markdown documents (task plan, progress ledger, dependency/export ledger,
execution log) and decides whether the next task may be deployed. All
project-specific configuration comes from the consuming repository's
.pipeline/ directory.
"""
