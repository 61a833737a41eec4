"""
Approvals app

Human approval gate: every change the pipeline proposes is stored as a
pending approval and decided exactly once by its owner. Only approved changes
ever reach a generated artifact.
"""
