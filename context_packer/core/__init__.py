"""Core token budgeting and content pipeline components."""
