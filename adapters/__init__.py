"""
Outbound adapters.

- llm: language-model providers used by leaf agents and supervisors
"""
