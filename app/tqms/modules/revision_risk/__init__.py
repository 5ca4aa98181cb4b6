"""
Revision Risk module: derives a risk level and recommendations for documents
from their age, margin impact and the signals of a linked procedure extraction.
"""
