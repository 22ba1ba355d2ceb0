# Credits: Kwark Team - 2024

import logging
import re
from dataclasses import dataclass, field

from kwark.errors import EntityParseError

logger = logging.getLogger()

# The entity lump is plain text:
# {
# "classname" "info_player_start"
# "origin" "480 -352 88"
# "angle" "90"
# }
TOKEN_RE = re.compile(r'"([^"]*)"|([{}])|([^\s{}"]+)')


@dataclass(frozen=True)
class Entity:
    classname: str
    origin: tuple = (0.0, 0.0, 0.0)
    angle: float = 0.0
    properties: dict = field(default_factory=dict, compare=False)

    def get(self, key, default=None):
        return self.properties.get(key, default)


def _parse_origin(value):
    if not value:
        return (0.0, 0.0, 0.0)
    parts = value.split()
    if len(parts) != 3:
        raise EntityParseError(f"Bad origin {value!r}")
    try:
        return tuple(float(p) for p in parts)
    except ValueError:
        raise EntityParseError(f"Bad origin {value!r}") from None


def _parse_angle(value):
    if not value:
        return 0.0
    try:
        return float(value)
    except ValueError:
        raise EntityParseError(f"Bad angle {value!r}") from None


def tokenize(text):
    """Yield (is_brace, value) pairs; a quoted "{" is a value, not a brace."""
    for quoted, brace, bare in TOKEN_RE.findall(text):
        if brace:
            yield True, brace
        else:
            yield False, bare or quoted


def _to_entity(properties):
    return Entity(
        classname=properties.get("classname", ""),
        origin=_parse_origin(properties.get("origin")),
        angle=_parse_angle(properties.get("angle")),
        properties=properties,
    )


def parse_entities(text):
    if isinstance(text, bytes):
        text = text.split(b"\x00", 1)[0].decode("ascii", errors="replace")

    entities = []
    current = None
    pending_key = None

    for is_brace, token in tokenize(text):
        if is_brace and token == "{":
            if current is not None:
                raise EntityParseError(f"Nested entity after {len(entities)} entities")
            current = {}
        elif is_brace:
            if current is None:
                raise EntityParseError(f"Too many closing brackets after {len(entities)} entities")
            if pending_key is not None:
                raise EntityParseError(f"Key {pending_key!r} has no value")
            entities.append(_to_entity(current))
            current = None
        elif current is None:
            raise EntityParseError(f"Unexpected {token!r} outside an entity")
        elif pending_key is None:
            pending_key = token
        else:
            current[pending_key] = token
            pending_key = None

    if current is not None:
        raise EntityParseError("Last entity didn't end")

    logger.debug("Parsed %i entities", len(entities))
    return entities
