"""
Tests for the HAR Replay Rule Compiler

Tests compilation of the configuration document including:
- Version validation and defaulting of absent lists
- Mappings (literal and regex with group templates)
- Replacements (literal, regex, variable references)
- Response header transforms and their composition
- Load-time rejection of malformed specs
"""

import re

import pytest

from harreplay.errors import ConfigCompileError
from harreplay.replay.rules import (
    CompiledRules,
    FieldReference,
    LiteralMatcher,
    RegexMatcher,
    compile_header_transform,
    compile_mapping,
    compile_replacement,
    compile_rules,
    expand_template,
    parse_matcher,
)


def regex(source):
    return {'regex': source}


@pytest.fixture
def readme_config():
    """The configuration used as the documented example."""
    return compile_rules({
        'version': 1,
        'mappings': [
            {
                'match': regex('.*\\/static\\/(.*)'),
                'path': './public/$1'
            }
        ],
        'responseHeaderTransforms': [
            {'nameMatch': 'foo', 'valueImage': 'cap'},
            {'nameMatch': 'bar', 'nameImage': 'wut'},
            {'nameMatch': regex('(foo\\d+)'), 'nameImage': 'foo_numbered'},
            {'nameMatch': regex('baz(\\d+)'), 'nameImage': 'gaw$1'},
            {
                'nameMatch': regex('([Ll]ocation)'),
                'valueMatch': regex('^https://(.*)'),
                'valueImage': 'http://$1'
            }
        ],
        'replacements': [
            # JSONP callback names are randomly generated
            {
                'match': {'var': 'entry.request.parsedUrl.query.callback'},
                'replace': {'var': 'request.parsedUrl.query.callback'}
            },
            {'match': 'https', 'replace': 'http'}
        ]
    })


def callback_context(recorded, live):
    return {
        'entry': {'request': {'parsedUrl': {'query': {'callback': recorded}}}},
        'request': {'parsedUrl': {'query': {'callback': live}}}
    }


class TestCompileRules:
    """Test top-level document compilation."""

    def test_missing_lists_default_to_empty(self):
        """Test a config with only a version."""
        rules = compile_rules({'version': 1})

        assert rules.mappings == []
        assert rules.replacements == []
        assert rules.header_transforms == []

    def test_no_document(self):
        """Test that no configuration compiles to empty rules."""
        rules = compile_rules(None)

        assert isinstance(rules, CompiledRules)
        assert rules.map_url('http://example.com/') is None

    def test_missing_version(self):
        """Test that a missing version is rejected."""
        with pytest.raises(ConfigCompileError, match='version'):
            compile_rules({'mappings': []})

    @pytest.mark.parametrize('version', [0, 2, '1', True])
    def test_unsupported_version(self, version):
        """Test that unknown versions are rejected."""
        with pytest.raises(ConfigCompileError):
            compile_rules({'version': version})

    def test_list_must_be_list(self):
        """Test that a non-list rule collection is rejected."""
        with pytest.raises(ConfigCompileError, match='mappings'):
            compile_rules({'version': 1, 'mappings': {'match': 'x', 'path': 'y'}})

    def test_document_must_be_object(self):
        """Test that a non-object document is rejected."""
        with pytest.raises(ConfigCompileError):
            compile_rules(['version', 1])

    def test_lists_preserve_declared_order(self):
        """Test that rules run in the order they are declared."""
        rules = compile_rules({
            'version': 1,
            'replacements': [
                {'match': 'a', 'replace': 'b'},
                {'match': 'b', 'replace': 'c'}
            ]
        })

        assert rules.apply_replacements('a', {}) == 'c'

    def test_bad_regex_fails_at_load_time(self):
        """Test that invalid regexes are rejected when compiling."""
        with pytest.raises(ConfigCompileError, match=r'mappings\[0\]\.match'):
            compile_rules({
                'version': 1,
                'mappings': [{'match': regex('(unclosed'), 'path': 'x'}]
            })

    def test_is_value_error(self):
        """Test that config errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            compile_rules({'version': 'one'})


class TestParseMatcher:
    """Test parsing of loosely-typed matcher specs into variants."""

    def test_literal(self):
        assert parse_matcher('abc', 'm') == LiteralMatcher('abc')

    def test_regex(self):
        matcher = parse_matcher({'regex': 'a+b'}, 'm')

        assert isinstance(matcher, RegexMatcher)
        assert matcher.pattern.search('xaab')

    def test_regex_flags(self):
        """Test optional regex flags."""
        matcher = parse_matcher({'regex': 'abc', 'flags': 'i'}, 'm')

        assert matcher.pattern.flags & re.IGNORECASE
        assert matcher.pattern.search('xABCx')

    def test_unknown_flag(self):
        with pytest.raises(ConfigCompileError, match='flag'):
            parse_matcher({'regex': 'abc', 'flags': 'q'}, 'm')

    def test_field_reference(self):
        matcher = parse_matcher({'var': 'request.parsedUrl.query.x'}, 'm', allow_field=True)

        assert matcher == FieldReference(('request', 'parsedUrl', 'query', 'x'))

    def test_field_reference_not_allowed(self):
        """Test that variables are rejected outside replacements."""
        with pytest.raises(ConfigCompileError, match='variable'):
            parse_matcher({'var': 'request.url'}, 'm')

    @pytest.mark.parametrize('raw', ['', 42, None, ['a'], {'other': 'x'}, {'regex': 5}, {'var': 'a..b'}])
    def test_invalid_specs(self, raw):
        with pytest.raises(ConfigCompileError):
            parse_matcher(raw, 'm', allow_field=True)


class TestFieldReference:
    """Test resolving variables against the replacement context."""

    def test_resolves_nested_value(self):
        ref = FieldReference(('request', 'parsedUrl', 'query', 'callback'))

        assert ref.resolve(callback_context('a', 'b')) == 'b'

    def test_absent_value(self):
        ref = FieldReference(('request', 'parsedUrl', 'query', 'missing'))

        assert ref.resolve(callback_context('a', 'b')) is None

    def test_empty_value(self):
        ref = FieldReference(('request', 'parsedUrl', 'query', 'callback'))

        assert ref.resolve(callback_context('a', '')) is None

    def test_list_value_uses_first(self):
        ref = FieldReference(('values',))

        assert ref.resolve({'values': ['x', 'y']}) == 'x'

    def test_non_string_values_are_stringified(self):
        ref = FieldReference(('response', 'status'))

        assert ref.resolve({'response': {'status': 200}}) == '200'


class TestExpandTemplate:
    """Test $N template expansion."""

    def test_groups(self):
        found = re.search(r'(\w+)@(\w+)', 'mail joe@host now')

        assert expand_template('$2/$1', found) == 'host/joe'

    def test_whole_match_and_dollar(self):
        found = re.search(r'b+', 'abbbc')

        assert expand_template('[$&] costs $$5', found) == '[bbb] costs $5'

    def test_missing_group_left_as_written(self):
        found = re.search(r'(a)', 'a')

        assert expand_template('$1$2', found) == 'a$2'

    def test_unmatched_optional_group_is_empty(self):
        found = re.search(r'(a)(z)?', 'a')

        assert expand_template('<$1$2>', found) == '<a>'

    def test_two_digit_reference_falls_back_to_one_digit(self):
        found = re.search(r'v(\d)', 'v1')

        assert expand_template('/api/$12/x', found) == '/api/12/x'
        assert expand_template('$10', found) == '10'

    def test_two_digit_reference(self):
        found = re.search('(a)(b)(c)(d)(e)(f)(g)(h)(i)(j)(k)(l)', 'abcdefghijkl')

        assert expand_template('$12-$1', found) == 'l-a'

    def test_unknown_two_digit_reference_left_as_written(self):
        found = re.search(r'(a)', 'a')

        assert expand_template('$23', found) == '$23'

    def test_without_match(self):
        assert expand_template('./public/$1', None) == './public/$1'


class TestMappings:
    """Test compiled mapping functions."""

    def test_readme_mapping(self, readme_config):
        """Test the documented static mapping."""
        assert len(readme_config.mappings) == 1
        mapping = readme_config.mappings[0]

        assert callable(mapping)
        assert mapping('http://example.com/one/two') is None
        assert mapping('http://example.com/static/one/two') == './public/one/two'
        assert mapping('http://example.com/something/static/one/two') == './public/one/two'
        assert mapping('http://x/static/app.js') == './public/app.js'

    def test_literal_mapping_matches_full_url(self):
        mapping = compile_mapping({'match': 'http://example.com/app.js', 'path': 'dist/app.js'}, 'm')

        assert mapping('http://example.com/app.js') == 'dist/app.js'
        assert mapping('http://example.com/app.js?v=2') is None

    def test_literal_destination_is_not_expanded(self):
        mapping = compile_mapping({'match': 'http://example.com/a', 'path': './cost$1.txt'}, 'm')

        assert mapping('http://example.com/a') == './cost$1.txt'

    def test_first_match_wins(self):
        rules = compile_rules({
            'version': 1,
            'mappings': [
                {'match': regex('/js/(.*)'), 'path': 'first/$1'},
                {'match': regex('example\\.com/(.*)'), 'path': 'second/$1'}
            ]
        })

        assert rules.map_url('http://example.com/js/app.js') == 'first/app.js'
        assert rules.map_url('http://example.com/css/app.css') == 'second/css/app.css'

    @pytest.mark.parametrize('spec', [
        {'path': 'x'},
        {'match': 'x'},
        {'match': 'x', 'path': ''},
        {'match': {'var': 'request.url'}, 'path': 'x'},
        'not an object',
    ])
    def test_invalid_mapping(self, spec):
        with pytest.raises(ConfigCompileError):
            compile_mapping(spec, 'mappings[0]')


class TestReplacements:
    """Test compiled replacement functions."""

    def test_finds_and_replaces_variables(self, readme_config):
        """Test replacing the recorded JSONP callback with the live one."""
        assert len(readme_config.replacements) == 2
        replacement = readme_config.replacements[0]

        result = replacement('a\nfail\nb\n   fail\nc\n', callback_context('fail', 'pass'))

        assert result == 'a\npass\nb\n   pass\nc\n'

    def test_finds_and_replaces_all_strings(self, readme_config):
        result = readme_config.replacements[1]('a\nhttps\nb\n   https\nc\n', {})

        assert result == 'a\nhttp\nb\n   http\nc\n'

    def test_regex_replacement_with_groups(self):
        replacement = compile_replacement(
            {'match': regex(r'https://(\w+)\.example\.com'), 'replace': 'http://localhost/$1'},
            'r'
        )

        content = 'a https://api.example.com b https://cdn.example.com'

        assert replacement(content, {}) == 'a http://localhost/api b http://localhost/cdn'

    def test_regex_replacement_with_variable(self):
        replacement = compile_replacement(
            {'match': regex(r'cb_\d+'), 'replace': {'var': 'request.parsedUrl.query.callback'}},
            'r'
        )

        assert replacement('cb_123({});', callback_context('x', 'cb_$1')) == 'cb_$1({});'

    def test_absent_match_variable_is_noop(self):
        replacement = compile_replacement(
            {'match': {'var': 'entry.request.parsedUrl.query.callback'}, 'replace': 'x'},
            'r'
        )

        assert replacement('content', {'entry': {}}) == 'content'

    def test_empty_match_variable_is_noop(self, readme_config):
        result = readme_config.replacements[0]('abc', callback_context('', 'pass'))

        assert result == 'abc'

    def test_absent_replace_variable_is_noop(self, readme_config):
        result = readme_config.replacements[0]('fail', {
            'entry': {'request': {'parsedUrl': {'query': {'callback': 'fail'}}}},
            'request': {}
        })

        assert result == 'fail'

    @pytest.mark.parametrize('spec', [
        {'match': 'x', 'replace': 'x!'},
        {'match': regex('x+'), 'replace': '$&!'},
        {'match': {'var': 'request.url'}, 'replace': 'y'},
    ])
    def test_non_matching_content_is_unchanged(self, spec):
        """Test that a replacement whose match is absent returns the content unchanged."""
        replacement = compile_replacement(spec, 'r')
        content = 'nothing to see here'

        assert replacement(content, {'request': {'url': 'http://example.com/'}}) == content

    @pytest.mark.parametrize('spec', [
        {'match': 'x'},
        {'replace': 'x'},
        {'match': 'x', 'replace': 5},
        {'match': 'x', 'replace': {'regex': 'y'}},
    ])
    def test_invalid_replacement(self, spec):
        with pytest.raises(ConfigCompileError):
            compile_replacement(spec, 'replacements[0]')


class TestHeaderTransforms:
    """Test compiled response header transforms."""

    @pytest.mark.parametrize('header,expected', [
        (('bean', '123'), ('bean', '123')),
        (('foo', '000'), ('foo', 'cap')),
        (('bar', 'gaw'), ('wut', 'gaw')),
        (('foo3', 'jkl'), ('foo_numbered', 'jkl')),
        (('baz8', 'qwer'), ('gaw8', 'qwer')),
        (('Location', 'http://foo.com/'), ('Location', 'http://foo.com/')),
        (('Location', 'https://foo.com/'), ('Location', 'http://foo.com/')),
    ])
    def test_readme_transforms(self, readme_config, header, expected):
        """Test the documented transform chain."""
        assert len(readme_config.header_transforms) == 5
        assert all(callable(t) for t in readme_config.header_transforms)

        assert readme_config.transform_header(*header) == expected

    def test_literal_name_is_case_insensitive(self):
        transform = compile_header_transform({'nameMatch': 'X-Frame-Options', 'valueImage': 'ALLOW'}, 't')

        assert transform('x-frame-options', 'DENY') == ('x-frame-options', 'ALLOW')

    def test_literal_value_must_equal(self):
        transform = compile_header_transform({'valueMatch': 'DENY', 'valueImage': 'ALLOW'}, 't')

        assert transform('X-Frame-Options', 'DENY') == ('X-Frame-Options', 'ALLOW')
        assert transform('X-Frame-Options', 'DENY2') == ('X-Frame-Options', 'DENY2')

    def test_no_name_match_applies_to_any_header(self):
        transform = compile_header_transform({'valueMatch': regex('example\\.com'), 'valueImage': 'local'}, 't')

        assert transform('Link', 'example.com') == ('Link', 'local')
        assert transform('Refresh', 'example.com') == ('Refresh', 'local')

    def test_value_image_uses_name_groups_without_value_match(self):
        transform = compile_header_transform(
            {'nameMatch': regex('^x-(\\w+)$'), 'valueImage': 'was $1'},
            't'
        )

        assert transform('x-trace', 'abc') == ('x-trace', 'was trace')

    def test_empty_spec_is_identity(self):
        transform = compile_header_transform({}, 't')

        assert transform('A', 'b') == ('A', 'b')

    def test_composition_matches_sequential_application(self):
        """Test that [t1, t2] behaves as t2(t1(header))."""
        t1_spec = {'nameMatch': regex('^x-(.*)$'), 'nameImage': 'y-$1'}
        t2_spec = {'nameMatch': regex('^y-(.*)$'), 'valueImage': '$1!'}
        rules = compile_rules({'version': 1, 'responseHeaderTransforms': [t1_spec, t2_spec]})
        t1 = compile_header_transform(t1_spec, 't1')
        t2 = compile_header_transform(t2_spec, 't2')

        for header in [('x-one', 'v'), ('y-two', 'v'), ('z', 'v')]:
            assert rules.transform_header(*header) == t2(*t1(*header))

    @pytest.mark.parametrize('spec', [
        {'nameMatch': regex('(')},
        {'valueMatch': {'var': 'request.url'}},
        {'nameImage': 5},
        ['nameMatch'],
    ])
    def test_invalid_transform(self, spec):
        with pytest.raises(ConfigCompileError):
            compile_header_transform(spec, 'responseHeaderTransforms[0]')
