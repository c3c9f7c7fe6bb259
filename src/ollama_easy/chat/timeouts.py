"""Per-model request timeout heuristic.

Larger models and reasoning models take longer to produce a full answer, so
each Ollama request gets a deadline picked from the model name.
"""

import re

# Reasoning families think before answering regardless of size
REASONING_TIMEOUT = 1800.0
REASONING_MARKERS = ("qwq", "deepseek-r1", "reasoning", "thinking")

# (minimum billions of parameters, timeout in seconds), largest first
SIZE_TIMEOUTS: tuple[tuple[float, float], ...] = (
    (100, 1200.0),
    (70, 600.0),
    (30, 300.0),
    (13, 180.0),
    (7, 150.0),
)
DEFAULT_TIMEOUT = 120.0

# "8b", "0.5b", "8x7b" (mixture of experts counts all experts)
_PARAMETER_PATTERN = re.compile(r"(?<![a-z0-9.])(?:(\d+)x)?(\d+(?:\.\d+)?)b(?![a-z])")


def parse_parameter_count(model_name: str) -> float | None:
    """Extract the declared parameter count in billions from a model name.

    Returns:
        The largest count found in the name, or None if the name declares none

    Example:
        >>> parse_parameter_count("qwen2.5:14b-instruct")
        14.0
        >>> parse_parameter_count("mixtral:8x7b")
        56.0
    """
    counts = []
    for experts, size in _PARAMETER_PATTERN.findall(model_name.lower()):
        count = float(size)
        if experts:
            count *= int(experts)
        counts.append(count)
    return max(counts) if counts else None


def is_reasoning_model(model_name: str) -> bool:
    name = model_name.lower()
    return any(marker in name for marker in REASONING_MARKERS)


def get_timeout_for_model(model_name: str | None) -> float:
    """Pick the request timeout in seconds for a model.

    A model never gets a shorter timeout than a strictly smaller one, and
    reasoning models always get the longest bucket.
    """
    if not model_name:
        return DEFAULT_TIMEOUT

    if is_reasoning_model(model_name):
        return REASONING_TIMEOUT

    count = parse_parameter_count(model_name)
    if count is None:
        return DEFAULT_TIMEOUT

    for minimum, timeout in SIZE_TIMEOUTS:
        if count >= minimum:
            return timeout
    return DEFAULT_TIMEOUT
