"""AI agent identification from User-Agent headers."""
from __future__ import annotations

from typing import Optional, Tuple

UNKNOWN_AGENT = "unknown"

# Checked in order; first substring hit wins (case-insensitive)
AI_AGENT_SIGNATURES: Tuple[Tuple[str, str], ...] = (
    ("claude-web", "claude"),
    ("chatgpt", "chatgpt"),
    ("gpt-4", "gpt4"),
    ("gemini", "gemini"),
    ("copilot", "github-copilot"),
    ("cursor", "cursor"),
    ("cody", "sourcegraph-cody"),
    ("claude/", "claude"),
    ("anthropic", "claude"),
    ("openai", "chatgpt"),
)


def identify_ai_agent(user_agent: Optional[str]) -> str:
    ua = (user_agent or "").lower()
    if not ua:
        return UNKNOWN_AGENT
    for needle, label in AI_AGENT_SIGNATURES:
        if needle in ua:
            return label
    return UNKNOWN_AGENT


def is_ai_agent(user_agent: Optional[str]) -> bool:
    return identify_ai_agent(user_agent) != UNKNOWN_AGENT
