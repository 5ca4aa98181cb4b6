"""
Procedure Extraction module: turns completed, AI-extracted procedure records
into Draft Procedure documents and keeps the two linked.
"""
