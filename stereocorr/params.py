# -*- coding: utf-8 -*-
"""
Tunable Parameter Annotations - Declarative settings via typing.Annotated.

Provides constraint markers (``Range``, ``Options``, ``Desc``) for use inside
``typing.Annotated`` class-body annotations, the ``ParamSpec`` introspection
class, and the ``Tunable`` base class that turns the annotations into a
validated keyword-only ``__init__``.

Usage
-----
Declare settings as class-body annotations::

    from typing import Annotated
    from stereocorr.params import Tunable, Range, Desc

    class MatcherOptions(Tunable):
        kernel: Annotated[int, Range(min=3, max=99), Desc('Window size')] = 21

    opts = MatcherOptions(kernel=15)

Enum-typed parameters also accept the enum's value (``'sgm'`` for
``CorrelationAlgorithm.SGM``), which is what a JSON file provides.

License
-------
MIT License
Copyright (c) 2024 geoint.org
See LICENSE file for full text.

Created
-------
2026-10-19

Modified
--------
2026-10-19
"""

# Standard library
import inspect
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    Optional,
    Tuple,
    Union,
    get_origin,
    get_type_hints,
)


# =====================================================================
# Constraint marker types  (used inside Annotated[...])
# =====================================================================

class ParamMeta:
    """Base marker for tunable parameter metadata in ``Annotated`` types."""


class Range(ParamMeta):
    """Inclusive numeric range constraint.

    Parameters
    ----------
    min : int or float, optional
        Minimum allowed value (inclusive).
    max : int or float, optional
        Maximum allowed value (inclusive).
    """

    __slots__ = ('min', 'max')

    def __init__(
        self,
        min: Optional[Union[int, float]] = None,
        max: Optional[Union[int, float]] = None,
    ) -> None:
        self.min = min
        self.max = max

    def __repr__(self) -> str:
        return f"Range(min={self.min!r}, max={self.max!r})"


class Options(ParamMeta):
    """Discrete choice constraint."""

    __slots__ = ('choices',)

    def __init__(self, *choices: Any) -> None:
        if not choices:
            raise ValueError("Options requires at least one choice")
        self.choices = choices

    def __repr__(self) -> str:
        return f"Options{self.choices!r}"


class Desc(ParamMeta):
    """Human-readable parameter description."""

    __slots__ = ('text',)

    def __init__(self, text: str) -> None:
        self.text = text

    def __repr__(self) -> str:
        return f"Desc({self.text!r})"


_SENTINEL = object()


class ParamSpec:
    """Resolved specification for a single tunable parameter.

    Attributes
    ----------
    name : str
        Parameter name (keyword-argument key).
    param_type : type
        Expected Python type. ``object`` disables the type check.
    default : Any
        Default value.
    description : str
        Human-readable description.
    min_value, max_value : int, float, or None
        Inclusive bounds (from ``Range``).
    choices : tuple or None
        Allowed values (from ``Options``).
    """

    __slots__ = (
        'name', 'param_type', 'default', 'has_default',
        'description', 'min_value', 'max_value', 'choices',
    )

    def __init__(
        self,
        name: str,
        param_type: type,
        default: Any,
        has_default: bool,
        description: str = '',
        min_value: Optional[Union[int, float]] = None,
        max_value: Optional[Union[int, float]] = None,
        choices: Optional[Tuple] = None,
    ) -> None:
        self.name = name
        self.param_type = param_type
        self.default = default
        self.has_default = has_default
        self.description = description
        self.min_value = min_value
        self.max_value = max_value
        self.choices = choices

    def coerce(self, value: Any) -> Any:
        """Convert serialized forms into the declared type.

        Enum parameters accept the member value or name, tuples accept
        lists, and floats accept integers.
        """
        ptype = self.param_type
        if isinstance(ptype, type) and issubclass(ptype, Enum):
            if isinstance(value, ptype):
                return value
            try:
                return ptype(value)
            except ValueError:
                if isinstance(value, str) and value.upper() in ptype.__members__:
                    return ptype[value.upper()]
                raise ValueError(
                    f"Parameter '{self.name}' value {value!r} is not a "
                    f"valid {ptype.__name__}"
                ) from None
        if ptype is tuple and isinstance(value, list):
            return tuple(value)
        if ptype is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value

    def validate(self, value: Any) -> None:
        """Validate *value* against this spec's type and constraints.

        Raises
        ------
        TypeError
            If *value* has the wrong type.
        ValueError
            If *value* violates range or choices constraints.
        """
        if self.param_type is not object and not isinstance(value, self.param_type):
            raise TypeError(
                f"Parameter '{self.name}' must be "
                f"{self.param_type.__name__}, got {type(value).__name__}"
            )

        if self.min_value is not None and value < self.min_value:
            raise ValueError(
                f"Parameter '{self.name}' value {value!r} "
                f"is below minimum {self.min_value!r}"
            )
        if self.max_value is not None and value > self.max_value:
            raise ValueError(
                f"Parameter '{self.name}' value {value!r} "
                f"is above maximum {self.max_value!r}"
            )
        if self.choices is not None and value not in self.choices:
            raise ValueError(
                f"Parameter '{self.name}' value {value!r} "
                f"is not in allowed choices {self.choices!r}"
            )

    def __repr__(self) -> str:
        return (
            f"ParamSpec(name={self.name!r}, "
            f"param_type={self.param_type.__name__}, "
            f"default={self.default!r})"
        )


def collect_param_specs(cls: type) -> Tuple[ParamSpec, ...]:
    """Parse ``Annotated`` type hints on *cls* into ``ParamSpec`` objects.

    Fields are ordered parent-first, preserving declaration order within
    each class. Only fields carrying at least one ``ParamMeta`` marker are
    collected.

    Raises
    ------
    TypeError
        If a field has both ``Range`` and ``Options`` constraints.
    """
    hints = get_type_hints(cls, include_extras=True)

    ordered_names: list = []
    for klass in reversed(cls.__mro__):
        for name in getattr(klass, '__annotations__', {}):
            if name not in ordered_names and name in hints:
                ordered_names.append(name)

    specs: list = []
    for name in ordered_names:
        hint = hints[name]
        if get_origin(hint) is not Annotated:
            continue
        metas = [m for m in hint.__metadata__ if isinstance(m, ParamMeta)]
        if not metas:
            continue

        found: Dict[type, ParamMeta] = {type(m): m for m in metas}
        range_meta = found.get(Range)
        options_meta = found.get(Options)
        desc_meta = found.get(Desc)
        if range_meta and options_meta:
            raise TypeError(
                f"Parameter '{name}' on {cls.__qualname__}: "
                f"Range and Options are mutually exclusive."
            )

        default = getattr(cls, name, _SENTINEL)
        specs.append(ParamSpec(
            name=name,
            param_type=hint.__args__[0],
            default=None if default is _SENTINEL else default,
            has_default=default is not _SENTINEL,
            description=desc_meta.text if desc_meta else '',
            min_value=range_meta.min if range_meta else None,
            max_value=range_meta.max if range_meta else None,
            choices=options_meta.choices if options_meta else None,
        ))

    return tuple(specs)


def _make_init(param_specs: Tuple[ParamSpec, ...]):
    """Build a keyword-only ``__init__`` that coerces and validates."""

    def __init__(self, **kwargs):
        unexpected = set(kwargs) - {s.name for s in param_specs}
        if unexpected:
            raise TypeError(
                f"{type(self).__name__}() got unexpected "
                f"keyword arguments: {', '.join(sorted(unexpected))}"
            )
        for spec in param_specs:
            if spec.name in kwargs:
                value = spec.coerce(kwargs[spec.name])
            elif spec.has_default:
                value = spec.default
            else:
                raise TypeError(
                    f"{type(self).__name__}() missing required "
                    f"keyword argument: '{spec.name}'"
                )
            if value is not None or not spec.has_default or spec.default is not None:
                spec.validate(value)
            object.__setattr__(self, spec.name, value)

        if hasattr(self, '__post_init__'):
            self.__post_init__()

    params = [inspect.Parameter('self', inspect.Parameter.POSITIONAL_OR_KEYWORD)]
    for spec in param_specs:
        params.append(inspect.Parameter(
            spec.name,
            inspect.Parameter.KEYWORD_ONLY,
            default=spec.default if spec.has_default else inspect.Parameter.empty,
        ))
    __init__.__signature__ = inspect.Signature(params)
    __init__.__qualname__ = '__init__'
    return __init__


class Tunable:
    """Base class whose ``Annotated`` fields become validated settings.

    Subclasses get ``__param_specs__`` and a generated ``__init__`` at class
    creation time. Parameters whose default is ``None`` are optional and skip
    validation while unset.
    """

    __param_specs__: Tuple[ParamSpec, ...] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.__param_specs__ = collect_param_specs(cls)
        if '__init__' not in cls.__dict__:
            cls.__init__ = _make_init(cls.__param_specs__)

    def to_dict(self) -> Dict[str, Any]:
        """Return the settings as JSON-compatible plain values."""
        out: Dict[str, Any] = {}
        for spec in self.__param_specs__:
            value = getattr(self, spec.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            out[spec.name] = value
        return out

    def __repr__(self) -> str:
        changed = [
            f"{s.name}={getattr(self, s.name)!r}"
            for s in self.__param_specs__
            if getattr(self, s.name) != s.default
        ]
        return f"{type(self).__name__}({', '.join(changed)})"
