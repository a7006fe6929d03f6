"""
Core module: the lazy tree of named values that represents an inspected file.

Every node of the tree is a Node: a Value holds a scalar, some bytes or a
ByteSource; a Container holds further named nodes, each one derived the
first time it's opened and then kept for the lifetime of the container.

The fields of a Container come from two places

 1. the class body, where fields are declared like in

        class Header(Container):
            magic = fields.StringField(0x00, 4)
            size  = fields.StructField('I', 0x04)

 2. install()/install_list() on the instance, for the fields that exist
    only when some condition on the data holds.
"""
import logging
import threading
from typing import Any, Dict, Iterable, List, Tuple, Union

from .fields import Field, DerivedField
from .meta import MetaContainer
from .streams import open_source
from .exceptions import (
    NcchViewException,
    FieldNotFoundException,
    TypeMismatchException,
    CyclicDependencyException,
)


class Node(object):
    """Base class of everything a container can hold."""

    def _get_value(self):
        raise TypeMismatchException(f'{self.__class__.__name__} has no value')

    value = property(
        fget=lambda self: self._get_value(),
    )

    def value_as(self, kind):
        '''Return the value checking that it is an instance of kind.'''
        value = self.value
        # bool is an int for isinstance() but not for us
        if isinstance(value, bool) != (kind is bool) or not isinstance(value, kind):
            raise TypeMismatchException('expected %s, got %s' % (
                kind.__name__, value.__class__.__name__))

        return value

    def open(self, name: str) -> "Node":
        raise FieldNotFoundException(f"{self.__class__.__name__} has no field named '{name}'")


class Value(Node):
    """A node holding a value computed once."""

    def __init__(self, value):
        self._value = value

    def __repr__(self):
        return '<%s(%r)>' % (self.__class__.__name__, self._value)

    def __str__(self):
        if isinstance(self._value, int) and not isinstance(self._value, bool):
            return hex(self._value)
        return str(self._value)

    def _get_value(self):
        return self._value


class Container(Node, metaclass=MetaContainer):
    """
    A node with named children.

    Opening a field evaluates its derivation only the first time, the
    resulting node is cached and returned as is from then on. Evaluation is
    serialized by a per-container re-entrant lock; a field whose derivation
    ends up opening the field itself is a configuration error.
    """

    def __init__(self, source=None):
        self.logger = logging.getLogger(f"{self.__module__}.{self.__class__.__name__}")
        self.source = open_source(source) if source is not None else None
        # a source opened here from a path or bytes belongs to the container
        self._owns_source = self.source is not None and self.source is not source
        self._derivations: Dict[str, Field] = dict(self._meta.fields)
        self._cache: Dict[str, Node] = {}
        self._evaluating: List[str] = []
        self._lock = threading.RLock()

    def __repr__(self):
        return '<%s(%s)>' % (self.__class__.__name__, ','.join(self.names()))

    def __str__(self):
        msg = ''
        for name in self.names():
            try:
                node = self.open(name)
            except NcchViewException as e:
                node = f'<error: {e}>'
            msg += '%s: %s\n' % (name, node)
        return msg

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        '''Close the source if it was opened by the container itself.'''
        if self._owns_source:
            self.source.close()

    def __contains__(self, name):
        return name in self._derivations

    def __iter__(self):
        return iter(self.names())

    def __getitem__(self, name):
        return self.open(name)

    def __getattr__(self, name):
        # reached only for the fields installed on the instance
        derivations = self.__dict__.get('_derivations', {})
        if name in derivations:
            return self.open(name)

        raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")

    def names(self) -> List[str]:
        return list(self._derivations)

    def install(self, name: str, derivation: Union[Field, Any]) -> None:
        '''Register derivation under name, replacing any previous one.

        derivation is a Field or a callable taking no arguments.'''
        if not isinstance(derivation, Field):
            func = derivation
            derivation = DerivedField(lambda container: func())
        derivation.name = name

        with self._lock:
            if name in self._derivations:
                self.logger.debug("replacing field '%s'", name)
            self._derivations[name] = derivation
            self._cache.pop(name, None)

    def install_list(self, entries: Union[Dict[str, Any], Iterable[Tuple[str, Any]]]) -> None:
        if isinstance(entries, dict):
            entries = entries.items()
        for name, derivation in entries:
            self.install(name, derivation)

    def open(self, name: str) -> Node:
        with self._lock:
            if name in self._cache:
                return self._cache[name]

            if name not in self._derivations:
                raise FieldNotFoundException(f"{self.__class__.__name__} has no field named '{name}'")

            if name in self._evaluating:
                raise CyclicDependencyException(
                    f"field '{name}' depends on itself", chain=self._evaluating[self._evaluating.index(name):] + [name])

            self.logger.debug("deriving %s.%s", self.__class__.__name__, name)
            self._evaluating.append(name)
            try:
                node = self._derivations[name].derive(self)
            except CyclicDependencyException:
                raise
            except NcchViewException as e:
                e.chain.insert(0, name)
                raise
            finally:
                self._evaluating.pop()

            if not isinstance(node, Node):
                node = Value(node)
            self._cache[name] = node

            return node

    def value_of(self, name: str, kind=None):
        '''Shortcut for open(name).value, typed when kind is given.'''
        node = self.open(name)
        return node.value if kind is None else node.value_as(kind)

    def error(self, name: str) -> str:
        '''Reason why the field name is not available, empty if it is or if
        nothing prevented it.'''
        error_name = f'{name}Error'
        if error_name not in self._derivations:
            return ''
        return self.value_of(error_name, str)
