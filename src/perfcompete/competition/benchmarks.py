"""Benchmark identity and declarative benchmark metadata.

Benchmarks are plain methods on a class, tagged with decorators::

    @limits_resource("strings.xml")
    class StringBenchmarks:
        @competition_benchmark(baseline=True)
        def join(self): ...

        @competition_benchmark
        def concat(self): ...

Metadata is attached to the decorated object itself and read back with
:func:`get_attributes`, which never walks base classes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, TypeVar

from perfcompete.metrics.values import TargetKey

_ATTRIBUTES = "__perfcompete_attributes__"

T = TypeVar("T")


@dataclass(frozen=True)
class CompetitionBenchmarkInfo:
    """Marks a method as a competition participant."""

    baseline: bool = False
    does_not_compete: bool = False


@dataclass(frozen=True)
class LimitsResourceInfo:
    """Names the limits resource for a class or method."""

    name: str


def _attach(obj: Any, info: object) -> None:
    existing = obj.__dict__.get(_ATTRIBUTES, ())
    setattr(obj, _ATTRIBUTES, (*existing, info))


def get_attributes(obj: Any, attr_type: type[T]) -> list[T]:
    """Return the metadata records of *attr_type* declared directly on *obj*."""
    declared = getattr(obj, "__dict__", {}).get(_ATTRIBUTES, ())
    return [a for a in declared if isinstance(a, attr_type)]


def competition_benchmark(
    func: Callable[..., Any] | None = None,
    *,
    baseline: bool = False,
    does_not_compete: bool = False,
) -> Any:
    """Decorator marking a competition benchmark.

    Usable bare (``@competition_benchmark``) or with arguments.
    """

    def decorate(f: Callable[..., Any]) -> Callable[..., Any]:
        _attach(f, CompetitionBenchmarkInfo(baseline=baseline, does_not_compete=does_not_compete))
        return f

    if func is not None:
        return decorate(func)
    return decorate


def limits_resource(name: str) -> Callable[[T], T]:
    """Decorator naming the limits resource of a class or method."""
    if not name:
        raise ValueError("Limits resource name must not be empty.")

    def decorate(obj: T) -> T:
        _attach(obj, LimitsResourceInfo(name))
        return obj

    return decorate


@dataclass(frozen=True)
class Benchmark:
    """One benchmark method taking part in a competition."""

    type_name: str
    method_name: str
    is_baseline: bool = False
    does_not_compete: bool = False
    resources: tuple[str, ...] = ()  # outermost to innermost
    module: str | None = None

    @property
    def key(self) -> TargetKey:
        return TargetKey(self.type_name, self.method_name)

    @property
    def competes(self) -> bool:
        return not self.does_not_compete

    def __str__(self) -> str:
        return str(self.key)


def discover_benchmarks(cls: type, resources: Iterable[str] = ()) -> list[Benchmark]:
    """Build :class:`Benchmark` records for the methods of *cls*.

    *resources* lists enclosing resource names, outermost first. The class's
    own ``@limits_resource`` follows them, and a method-level one is
    innermost.
    """
    outer = tuple(resources)
    class_level = tuple(r.name for r in get_attributes(cls, LimitsResourceInfo))
    benchmarks: list[Benchmark] = []
    for method_name, member in vars(cls).items():
        func = member.__func__ if isinstance(member, (staticmethod, classmethod)) else member
        infos = get_attributes(func, CompetitionBenchmarkInfo)
        if not infos:
            continue
        info = infos[0]
        method_level = tuple(r.name for r in get_attributes(func, LimitsResourceInfo))
        benchmarks.append(
            Benchmark(
                type_name=cls.__name__,
                method_name=method_name,
                is_baseline=info.baseline,
                does_not_compete=info.does_not_compete,
                resources=outer + class_level + method_level,
                module=cls.__module__,
            )
        )
    return benchmarks
