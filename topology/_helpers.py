"""
Pure helpers for path matching, naming and task definitions. Testable without
Pulumi runtime.

Used by the routing model (path_matches), the identity component
(sanitize_domain_prefix), the edge hooks (normalize_header_name), the network
backend (is_limit_error) and the container service (container_definitions).
No Pulumi types; all functions accept and return plain Python types so they
can be unit-tested without a Pulumi stack.
"""

import json
import re

# Words Cognito refuses inside a hosted domain prefix.
RESERVED_DOMAIN_WORDS: tuple[str, ...] = ("aws", "amazon", "cognito")

_LIMIT_MARKERS: tuple[str, ...] = ("limitexceeded", "quota", "too many")


def path_pattern_regex(
    pattern: str,
) -> re.Pattern[str]:
    """
    Compile an ALB path pattern into an anchored regular expression.

    ALB path patterns are case-sensitive and support two wildcards: ``*``
    (zero or more characters) and ``?`` (exactly one character). Every other
    character is literal.
    """
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def path_matches(
    pattern: str,
    path: str,
) -> bool:
    """Return True when the whole request path matches the ALB path pattern."""
    return path_pattern_regex(pattern).fullmatch(path) is not None


def sanitize_domain_prefix(
    prefix: str,
    max_len: int = 63,
) -> str:
    """
    Produce a Cognito-compliant hosted domain prefix.

    Cognito domain prefixes are lowercase letters, digits and hyphens, may not
    start or end with a hyphen, and may not contain "aws", "amazon" or
    "cognito". Disallowed characters become hyphens, runs of hyphens collapse.

    Args:
        prefix: Base name (e.g. "Web-Service_dev").
        max_len: Maximum length (default 63 per Cognito).

    Returns:
        Sanitized prefix (e.g. "web-service-dev").
    """
    cleaned = prefix.lower()
    # Removing one word can join the pieces of another, so repeat until stable.
    previous = None
    while cleaned != previous:
        previous = cleaned
        for word in RESERVED_DOMAIN_WORDS:
            cleaned = cleaned.replace(word, "")
    cleaned = re.sub(r"[^a-z0-9-]+", "-", cleaned)
    cleaned = re.sub(r"-{2,}", "-", cleaned).strip("-")
    return cleaned[:max_len].rstrip("-")


def normalize_header_name(
    name: str,
) -> str:
    """
    Return the canonical (lowercase, trimmed) form of an HTTP header name.

    CloudFront Functions expose request headers keyed by lowercase name, so
    hooks compare and render header names in this form.
    """
    return name.strip().lower()


def is_limit_error(
    message: str,
) -> bool:
    """Return True when a platform error message reports a quota or limit."""
    lowered = message.lower()
    return any(marker in lowered for marker in _LIMIT_MARKERS)


def container_definitions(
    name: str,
    image: str,
    container_port: int,
    log_group_name: str,
    region: str,
    stream_prefix: str,
) -> str:
    """
    Render the ECS container definitions JSON for a single web container.

    Logs go to CloudWatch through the awslogs driver in non-blocking mode so a
    slow log pipeline never stalls the container's stdout.
    """
    return json.dumps(
        [
            {
                "name": name,
                "image": image,
                "essential": True,
                "portMappings": [{"containerPort": container_port, "protocol": "tcp"}],
                "environment": [],
                "logConfiguration": {
                    "logDriver": "awslogs",
                    "options": {
                        "awslogs-group": log_group_name,
                        "awslogs-region": region,
                        "awslogs-stream-prefix": stream_prefix,
                        "mode": "non-blocking",
                    },
                },
            }
        ]
    )
