"""
Review summary layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build a summary prompt from a restaurant's review texts.
- Call the Groq LLM for a one-sentence summary.
- Report failure as ``None`` so callers can show a fixed message instead.
"""
