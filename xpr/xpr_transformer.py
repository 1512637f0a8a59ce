"""
Transforms a tagged-dictionary AST into an xpr Request tree.

The dictionaries are the shape a parser emits: `{'tag': ..., 'children':
[...]}` branches and `{'tag': ..., 'text': ...}` or `{'tag': ..., 'value':
...}` leaves, optionally carrying `line`/`col`. Such documents can also be
kept as YAML (or JSON) and read with `load_request`.
"""
import datetime
import pathlib

import yaml

from xpr.xpr_datatypes import (
    Literal, Undef, Apply, Ref, Sequence, Let, Define, Call, Native,
)
from xpr.xpr_functions import function_ref


class RequestTransformer:
    def __init__(self, registry=None):
        self.registry = registry

    def _attach_loc(self, obj, node):
        line = node.get('line'); col = node.get('col')
        if line is not None and col is not None and hasattr(obj, '__dict__'):
            obj.loc = {'line': line, 'col': col, 'tag': node.get('tag'), 'text': node.get('text')}
        return obj

    def transform(self, node: object) -> object:
        # A bare list is a sequence of requests
        if isinstance(node, list):
            return Sequence([self.transform(n) for n in node])

        # Host values already in final form
        if not isinstance(node, dict):
            return Literal(node)

        tag = node.get('tag')
        if tag is None:
            raise ValueError(f"AST node has no tag: {node!r}")
        children = node.get('children', [])

        match tag:
            # Structural containers
            case 'code':
                return self._attach_loc(Sequence(self._transform_all(children)), node)
            case 'expr':
                if len(children) != 1:
                    raise ValueError(f"'expr' node must wrap exactly one child, got {len(children)}")
                return self.transform(children[0])
            case 'list':
                return self._attach_loc(Apply('List', self._transform_all(children)), node)

            # Atomics
            case 'number':
                # Integers given as text stay exact Python ints.
                txt = node.get('text')
                if 'value' not in node and isinstance(txt, str):
                    return self._attach_loc(Literal(float(txt) if '.' in txt else int(txt)), node)
                return self._attach_loc(Literal(node['value']), node)
            case 'boolean':
                return self._attach_loc(Literal(bool(node['value'])), node)
            case 'string':
                return self._attach_loc(Literal(node['text']), node)
            case 'date':
                return self._attach_loc(Literal(self._to_date(node)), node)
            case 'path':
                return self._attach_loc(Literal(pathlib.PurePosixPath(node['text'])), node)
            case 'undef':
                return self._attach_loc(Undef(), node)

            # Names and applications
            case 'name':
                return self._attach_loc(Ref(node['text']), node)
            case 'function':
                return self._attach_loc(function_ref(node['text'], self.registry), node)
            case 'apply':
                return self._attach_loc(Apply(node['text'], self._transform_all(children)), node)

            # Interpreter requests
            case 'let':
                if len(children) != 2:
                    raise ValueError("'let' expects a value and a body")
                value, body = self._transform_all(children)
                return self._attach_loc(Let(node['text'], value, body), node)
            case 'define':
                if len(children) != 1:
                    raise ValueError("'define' expects exactly one body")
                params = list(node.get('params') or [])
                return self._attach_loc(Define(node['text'], params, self.transform(children[0])), node)
            case 'call':
                return self._attach_loc(Call(node['text'], self._transform_all(children)), node)
            case 'native':
                attributes = {k: self.transform(v) for k, v in (node.get('attributes') or {}).items()}
                obj = Native(node.get('receiver'), node['text'], self._transform_all(children), attributes)
                return self._attach_loc(obj, node)

            case _:
                raise NotImplementedError(f"No transformer for tag '{tag}'")

    def _transform_all(self, children):
        return [self.transform(c) for c in children]

    def _to_date(self, node):
        # YAML already turns unquoted ISO dates into date objects.
        value = node.get('value', node.get('text'))
        if isinstance(value, datetime.date):
            return value
        return datetime.date.fromisoformat(str(value))


def load_request(source: str, registry=None):
    """Reads a tagged-dictionary AST from YAML (or JSON) text and transforms it."""
    return RequestTransformer(registry).transform(yaml.safe_load(source))
