"""
Arbor utilities (internal helpers shared by every layer).

Overview
- UnsetType / Unset
  • Sentinel for "value not provided", distinct from None (None is a legitimate
    value for descriptions, defaults and so on).
  • Falsey, printable as "Unset", sealed against subclassing.

- coalesce(value, default=None)
  • Materialize Unset into a concrete default; every other value (None, 0, "")
    is preserved.

- rename(callable, name) / @rename("name")
  • Give generated callables a stable __name__/__qualname__ for readable
    tracebacks and reprs.

- mirror("attr")
  • Read-only property over a private backing field (self._attr). Containers
    are copied on access so the public view cannot mutate internal state.

- Introspectable
  • Metaclass shared by argument declarations and commands: derives a
    __typename__ used in messages, publishes every name in __introspectable__
    through mirror(), and provides __repr__/__rich_repr__.

Quick examples
    >>> coalesce(Unset, "fallback")
    'fallback'
    >>> coalesce(None, "fallback") is None
    True
"""
import builtins
import functools
import operator
import re
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Sentinel type for parameters that were not provided.

    A single instance, Unset, is exposed. It is falsey, prints as "Unset" and
    participates in PEP 604 unions so that isinstance(x, str | Unset) reads
    naturally in validation code.
    """

    def __or__(self, other, /):
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


Unset = UnsetType()
"""
Sentinel for "not provided". Use as a parameter default when None is a
meaningful value, then materialize it with coalesce().
"""


def coalesce(object, default=None, /):
    """
    Return object unless it is Unset, in which case return default.

    Falsey values such as None, 0, "" or () are returned unchanged; only the
    sentinel is replaced.
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set __name__/__qualname__ on a callable, or build a decorator that does.

    Forms
    - rename(callable, name) -> callable (renamed in place)
    - @rename(name)          -> decorator
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _detach(object):
    """
    Copy containers recursively so callers never hold internal references.

    Tuples stay tuples (they are already immutable at the top level), other
    sequences become lists, mappings become dicts and sets become sets. Strings
    and every other object are returned as they are.
    """
    if isinstance(object, str):
        return object
    elif isinstance(object, tuple):
        return type(object)(*map(_detach, object)) if hasattr(object, "_fields") else tuple(map(_detach, object))
    elif isinstance(object, Sequence):
        return list(map(_detach, object))
    elif isinstance(object, Mapping):
        return dict(zip(object.keys(), map(_detach, object.values())))
    elif isinstance(object, Set):
        return set(map(_detach, object))
    return object


def mirror(name, /):
    """
    Build a read-only property exposing self._{name}.

    Container values are detached (copied) on every access, see _detach().
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _detach(getattr(self, "_" + name))

    return property(getter)


class Introspectable(type):
    """
    Metaclass for declarative objects with read-only public state.

    Responsibilities
    - __typename__: class name split on camel case and hyphenated
      ("CallableHandler" -> "callable-handler"), used as the subject of
      validation messages.
    - one mirror() property per name listed in the class's __introspectable__.
    - __repr__ and __rich_repr__ built from __displayable__ when given,
      otherwise from __introspectable__.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
            **options
        )

        if "__repr__" not in namespace:
            @rename("__repr__")
            def __repr__(self):
                return f"{type(self).__typename__}({', '.join(map(functools.partial(operator.mod, '%s=%r'), self.__rich_repr__()))})"
            self.__repr__ = __repr__

        if "__rich_repr__" not in namespace:
            @rename("__rich_repr__")
            def __rich_repr__(self):
                for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                    yield name, getattr(self, name)
            self.__rich_repr__ = __rich_repr__

        return self


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",

    # Types
    "UnsetType",
    "Introspectable",

    # Constants
    "Unset",
)
