"""
Profundo: semantic memory over chat session transcripts

Indexes session logs into a local vector store, recalls conversations by
meaning, and harvests structured learnings with an LLM.
"""

__version__ = "0.3.0"
