"""
HAR Replay Rule Compiler

Compiles the declarative configuration document into executable rules:

- Mappings: URL -> local file path (first match wins)
- Replacements: (content, context) -> content, applied in order
- Response header transforms: (name, value) -> (name, value), composed in order

Matcher specs come in three shapes, parsed into explicit variants once:

    "literal text"                      -> LiteralMatcher
    {"regex": "pattern", "flags": "i"}  -> RegexMatcher
    {"var": "request.parsedUrl.query.x"} -> FieldReference (replacements only)

Templates reference regex groups with $1, $2, ...; $& is the whole match
and $$ a literal dollar sign.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Tuple, Union

from ..errors import ConfigCompileError


SUPPORTED_VERSIONS = (1,)

MappingRule = Callable[[str], Optional[str]]
ReplacementRule = Callable[[str, Mapping[str, Any]], str]
HeaderTransformRule = Callable[[str, str], Tuple[str, str]]

_TEMPLATE_RE = re.compile(r'\$(\$|&|\d{1,2})')

_REGEX_FLAGS = {
    'i': re.IGNORECASE,
    'm': re.MULTILINE,
    's': re.DOTALL,
    'g': 0,  # replacements are always global
}


@dataclass(frozen=True)
class LiteralMatcher:
    """Plain string match."""

    text: str


@dataclass(frozen=True)
class RegexMatcher:
    """Regular expression match, searched anywhere in the subject."""

    pattern: Pattern


@dataclass(frozen=True)
class FieldReference:
    """Dotted path into the replacement context (e.g. `request.parsedUrl.query.callback`)."""

    path: Tuple[str, ...]

    def resolve(self, context: Mapping[str, Any]) -> Optional[str]:
        """
        Look the field up in `context`.

        Returns:
            The field as a string, or None when it is absent or empty
        """
        value: Any = context
        for key in self.path:
            if not isinstance(value, Mapping) or key not in value:
                return None
            value = value[key]

        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is None or value == '':
            return None
        return str(value)


Matcher = Union[LiteralMatcher, RegexMatcher, FieldReference]


def parse_matcher(raw: Any, where: str, allow_field: bool = False) -> Matcher:
    """
    Parse a loosely-typed matcher spec into its explicit variant.

    Args:
        raw: String, {"regex": ...} or {"var": ...}
        where: Location in the document, used in error messages
        allow_field: Whether a field reference is valid here

    Returns:
        LiteralMatcher, RegexMatcher or FieldReference

    Raises:
        ConfigCompileError: If the matcher is malformed
    """
    if isinstance(raw, str):
        if not raw:
            raise ConfigCompileError(f"{where}: empty match string")
        return LiteralMatcher(raw)

    if isinstance(raw, Mapping):
        if 'regex' in raw:
            return RegexMatcher(_compile_regex(raw['regex'], raw.get('flags', ''), where))
        if 'var' in raw:
            if not allow_field:
                raise ConfigCompileError(f"{where}: variable references are only allowed in replacements")
            path = raw['var']
            if not isinstance(path, str) or not all(path.split('.')):
                raise ConfigCompileError(f"{where}: invalid variable reference {path!r}")
            return FieldReference(tuple(path.split('.')))

    raise ConfigCompileError(f"{where}: expected a string or an object with 'regex' or 'var', got {raw!r}")


def _compile_regex(source: Any, flags: Any, where: str) -> Pattern:
    if not isinstance(source, str):
        raise ConfigCompileError(f"{where}: regex must be a string, got {source!r}")
    if not isinstance(flags, str):
        raise ConfigCompileError(f"{where}: regex flags must be a string, got {flags!r}")

    compiled_flags = 0
    for flag in flags:
        if flag not in _REGEX_FLAGS:
            raise ConfigCompileError(f"{where}: unsupported regex flag {flag!r}")
        compiled_flags |= _REGEX_FLAGS[flag]

    try:
        return re.compile(source, compiled_flags)
    except re.error as e:
        raise ConfigCompileError(f"{where}: invalid regex {source!r}: {e}") from e


def expand_template(template: str, match: Optional[re.Match]) -> str:
    """
    Expand $N group references in `template` from `match`.

    References to groups that do not exist are left as written;
    groups that did not participate expand to the empty string.
    """
    if match is None or '$' not in template:
        return template

    def substitute(ref: re.Match) -> str:
        token = ref.group(1)
        if token == '$':
            return '$'
        if token == '&':
            return match.group(0)
        groups = match.re.groups or 0
        group = int(token)
        if len(token) == 2 and group > groups:
            # $12 with fewer than 12 groups is $1 followed by "2"
            first = int(token[0])
            if 1 <= first <= groups:
                return (match.group(first) or '') + token[1]
            return ref.group(0)
        if group < 1 or group > groups:
            return ref.group(0)
        return match.group(group) or ''

    return _TEMPLATE_RE.sub(substitute, template)


def compile_mapping(spec: Any, where: str) -> MappingRule:
    """
    Compile a mapping spec: {"match": <literal|regex>, "path": "<template>"}.

    A literal matches the full URL exactly; a regex is searched in it.
    """
    spec = _require_object(spec, where)
    if 'match' not in spec:
        raise ConfigCompileError(f"{where}: missing 'match'")
    destination = spec.get('path')
    if not isinstance(destination, str) or not destination:
        raise ConfigCompileError(f"{where}: 'path' must be a non-empty string")

    matcher = parse_matcher(spec['match'], f"{where}.match")

    if isinstance(matcher, LiteralMatcher):
        def literal_mapping(url: str) -> Optional[str]:
            return destination if url == matcher.text else None
        return literal_mapping

    def regex_mapping(url: str) -> Optional[str]:
        found = matcher.pattern.search(url)
        if found is None:
            return None
        return expand_template(destination, found)
    return regex_mapping


def compile_replacement(spec: Any, where: str) -> ReplacementRule:
    """
    Compile a replacement spec: {"match": <literal|regex|var>, "replace": <string|var>}.

    Every occurrence is replaced. Content without an occurrence comes back
    unchanged; a variable that resolves to nothing makes the rule a no-op.
    """
    spec = _require_object(spec, where)
    if 'match' not in spec:
        raise ConfigCompileError(f"{where}: missing 'match'")
    if 'replace' not in spec:
        raise ConfigCompileError(f"{where}: missing 'replace'")

    matcher = parse_matcher(spec['match'], f"{where}.match", allow_field=True)
    replace = _parse_replace(spec['replace'], f"{where}.replace")

    def resolve_replacement(context: Mapping[str, Any]) -> Optional[str]:
        if isinstance(replace, FieldReference):
            return replace.resolve(context)
        return replace

    if isinstance(matcher, RegexMatcher):
        def regex_replacement(content: str, context: Mapping[str, Any]) -> str:
            image = resolve_replacement(context)
            if image is None:
                return content
            if isinstance(replace, FieldReference):
                return matcher.pattern.sub(lambda found: image, content)
            return matcher.pattern.sub(lambda found: expand_template(image, found), content)
        return regex_replacement

    def string_replacement(content: str, context: Mapping[str, Any]) -> str:
        if isinstance(matcher, FieldReference):
            needle = matcher.resolve(context)
        else:
            needle = matcher.text
        image = resolve_replacement(context)
        if not needle or image is None or needle not in content:
            return content
        return content.replace(needle, image)
    return string_replacement


def _parse_replace(raw: Any, where: str) -> Union[str, FieldReference]:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping) and 'var' in raw:
        matcher = parse_matcher(raw, where, allow_field=True)
        return matcher
    raise ConfigCompileError(f"{where}: expected a string or an object with 'var', got {raw!r}")


def compile_header_transform(spec: Any, where: str) -> HeaderTransformRule:
    """
    Compile a response header transform spec.

    Keys (all optional): nameMatch, valueMatch, nameImage, valueImage.
    The transform applies only when every declared matcher matches; a
    literal name compares case-insensitively, a literal value exactly.
    Images replace the whole name/value, with $N taken from the
    corresponding match (value images fall back to the name match).
    """
    spec = _require_object(spec, where)
    name_matcher = _optional_matcher(spec, 'nameMatch', where)
    value_matcher = _optional_matcher(spec, 'valueMatch', where)
    name_image = _optional_image(spec, 'nameImage', where)
    value_image = _optional_image(spec, 'valueImage', where)

    def transform(name: str, value: str) -> Tuple[str, str]:
        matched, name_found = _match_header_part(name_matcher, name, case_insensitive=True)
        if not matched:
            return name, value
        matched, value_found = _match_header_part(value_matcher, value, case_insensitive=False)
        if not matched:
            return name, value

        new_name = expand_template(name_image, name_found) if name_image is not None else name
        if value_image is not None:
            new_value = expand_template(value_image, value_found or name_found)
        else:
            new_value = value
        return new_name, new_value

    return transform


def _optional_matcher(spec: Mapping[str, Any], key: str, where: str) -> Optional[Matcher]:
    if spec.get(key) is None:
        return None
    return parse_matcher(spec[key], f"{where}.{key}")


def _optional_image(spec: Mapping[str, Any], key: str, where: str) -> Optional[str]:
    image = spec.get(key)
    if image is not None and not isinstance(image, str):
        raise ConfigCompileError(f"{where}.{key}: expected a string, got {image!r}")
    return image


def _match_header_part(
    matcher: Optional[Matcher],
    subject: str,
    case_insensitive: bool
) -> Tuple[bool, Optional[re.Match]]:
    if matcher is None:
        return True, None
    if isinstance(matcher, RegexMatcher):
        found = matcher.pattern.search(subject)
        return found is not None, found
    if case_insensitive:
        return subject.lower() == matcher.text.lower(), None
    return subject == matcher.text, None


def _require_object(spec: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(spec, Mapping):
        raise ConfigCompileError(f"{where}: expected an object, got {spec!r}")
    return spec


@dataclass
class CompiledRules:
    """Executable rules, each list in declared order."""

    mappings: List[MappingRule] = field(default_factory=list)
    replacements: List[ReplacementRule] = field(default_factory=list)
    header_transforms: List[HeaderTransformRule] = field(default_factory=list)

    def map_url(self, url: str) -> Optional[str]:
        """Destination of the first mapping that matches `url`, or None."""
        for mapping in self.mappings:
            destination = mapping(url)
            if destination:
                return destination
        return None

    def apply_replacements(self, content: str, context: Mapping[str, Any]) -> str:
        """Run every replacement in order, each consuming the previous output."""
        for replacement in self.replacements:
            content = replacement(content, context)
        return content

    def transform_header(self, name: str, value: str) -> Tuple[str, str]:
        """Compose the header transforms left to right."""
        for transform in self.header_transforms:
            name, value = transform(name, value)
        return name, value


def compile_rules(document: Optional[Mapping[str, Any]]) -> CompiledRules:
    """
    Compile a configuration document into rules.

    Args:
        document: Parsed configuration ({"version": 1, "mappings": [...], ...}),
            or None for no configuration

    Returns:
        CompiledRules with absent lists defaulting to empty

    Raises:
        ConfigCompileError: On unsupported version or malformed specs
    """
    if document is None:
        return CompiledRules()
    if not isinstance(document, Mapping):
        raise ConfigCompileError(f"Configuration must be an object, got {type(document).__name__}")

    version = document.get('version')
    if version is None:
        raise ConfigCompileError("Configuration is missing 'version'")
    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise ConfigCompileError(f"Unsupported configuration version {version!r}")

    return CompiledRules(
        mappings=_compile_list(document, 'mappings', compile_mapping),
        replacements=_compile_list(document, 'replacements', compile_replacement),
        header_transforms=_compile_list(document, 'responseHeaderTransforms', compile_header_transform)
    )


def _compile_list(document: Mapping[str, Any], key: str, compile_one: Callable[[Any, str], Any]) -> List[Any]:
    specs = document.get(key)
    if specs is None:
        return []
    if not isinstance(specs, list):
        raise ConfigCompileError(f"'{key}' must be a list, got {type(specs).__name__}")
    return [compile_one(spec, f"{key}[{i}]") for i, spec in enumerate(specs)]
