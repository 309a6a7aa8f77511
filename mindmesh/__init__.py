"""MindMesh message-processing pipeline.

Takes one user utterance through emotion analysis, context retrieval,
recommendation, safety escalation and reply generation, then stores a
memory embedding in the background.
"""

__version__ = "0.1.0"
