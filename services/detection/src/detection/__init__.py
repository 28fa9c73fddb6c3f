"""
AdLex Violation Detection.

Locates dictionary NG phrases inside a check's text by exact and
partial (first-token, word-boundary) matching, and ranks dictionary
items by embedding similarity to the input.
"""
