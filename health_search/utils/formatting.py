"""
Text helpers shared by the scorer, repositories and topic extractor
"""


def format_time(seconds: float) -> str:
    """Seconds as m:ss (minutes are not wrapped into hours)"""
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def truncate_preview(text: str, max_chars: int = 120) -> str:
    """Cut text to max_chars, marking the cut with an ellipsis"""
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."


def strip_markdown_code_blocks(text: str) -> str:
    """Strip markdown code fences from an AI response

    Args:
        text: Raw text that may be wrapped in ``` or ```json fences

    Returns:
        The inner text
    """
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()
