"""Helpers shared by the prompt modules."""

import re

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json_payload(text: str) -> str:
    """Cut the JSON document out of a model reply.

    Replies sometimes arrive inside a fenced code block, or with a sentence
    before or after the array. Text without any JSON brackets is returned
    stripped so that json.loads reports the problem.
    """
    text = text.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        return fenced.group(1).strip()

    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    if not starts:
        return text
    end = max(text.rfind("]"), text.rfind("}"))
    if end < min(starts):
        return text[min(starts):]
    return text[min(starts):end + 1]
