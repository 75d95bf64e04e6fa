"""
Harvest: LLM extraction of learning records from session transcripts
"""
