"""Evaluation and experimentation engine for coach replies.

Heuristic scoring grades every reply deterministically; the optional LLM
judge adds a second, model-based opinion that is logged alongside but never
replaces it.

Key components:
- heuristics: keyword/regex scoring of coach replies and insight cards
- judge: LLM-as-judge scoring with timeout, retry, and defensive parsing
- dataset: fixed scenario dataset + LangSmith integration
- runner: experiment orchestration, summary, and report
- comparison: regression detection between two runs
"""
