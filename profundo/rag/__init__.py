"""
Indexing and recall engine

Session parsing, turn chunking, embeddings, the vector store, cursor state,
ranking and result fusion.
"""
