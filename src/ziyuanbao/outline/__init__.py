"""
Outline Module - Course outline extraction.
==========================================

Two operator-selected paths produce the same canonical CourseOutline:

- heuristic: rule-based parsing of course HTML or Markdown
- ai: Gemini-delegated extraction with JSON reply parsing
"""

from ziyuanbao.outline.ai import OutlineGenerator
from ziyuanbao.outline.heuristic import HeuristicOutlineParser, parse_outline

__all__ = [
    "HeuristicOutlineParser",
    "OutlineGenerator",
    "parse_outline",
]
