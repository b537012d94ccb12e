"""
Health Search Engine
Answers health questions with ranked, timestamped video segments
"""
__version__ = "1.0.0"
