"""
LLM scorer integration.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build the ranking prompt from the query, candidates and learned context.
- Call the Groq LLM with an explicit timeout and validate its JSON answer.
- Signal missing credentials separately from transient failures.
"""
