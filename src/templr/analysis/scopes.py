"""
Scope tracking for static template analysis.

A ScopeStack mirrors the lexical scopes the template engine creates while
executing a template. Each frame maps variable names (including the implicit
context ".") to a Binding describing what the name refers to in the value
tree. Push and pop are checked: a construct must leave the stack at the depth
it found it.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from attrs import frozen

from templr.core.path_utils import join_path
from templr.exceptions import ScopeStackError

DOT = "."
ROOT = "$"


class Binding(ABC):
    """What a scoped name refers to in the value tree."""

    @abstractmethod
    def resolve(self, steps: tuple[str, ...]) -> str | None:
        """
        Resolve field steps against this binding.

        Params:
            steps: Literal field names accessed on the bound value

        Returns:
            The canonical path, or None when the binding is not statically known
        """

    @abstractmethod
    def describe(self) -> str:
        """Short description used in debug output."""


@frozen
class RootAlias(Binding):
    """The top of the value tree."""

    def resolve(self, steps: tuple[str, ...]) -> str | None:
        return join_path("", steps)

    def describe(self) -> str:
        return "<root>"


@frozen
class BoundTo(Binding):
    """A concrete canonical path."""

    path: str

    def resolve(self, steps: tuple[str, ...]) -> str | None:
        return join_path(self.path, steps)

    def describe(self) -> str:
        return self.path


@frozen
class ElementOf(Binding):
    """
    One element of a ranged-over collection.

    Element shape is never checked, so accesses through it do not resolve.
    """

    source: str | None = None

    def resolve(self, steps: tuple[str, ...]) -> str | None:
        return None

    def describe(self) -> str:
        return f"<element of {self.source or '?'}>"


@frozen
class Dynamic(Binding):
    """A value that is not statically known."""

    def resolve(self, steps: tuple[str, ...]) -> str | None:
        return None

    def describe(self) -> str:
        return "<dynamic>"


ROOT_ALIAS = RootAlias()
DYNAMIC = Dynamic()


def bind_path(path: str | None) -> Binding:
    """Return the binding for a resolved path ("" is the root, None is dynamic)."""
    if path is None:
        return DYNAMIC
    if not path:
        return ROOT_ALIAS
    return BoundTo(path)


@dataclass
class ScopeFrame:
    """One lexical scope: a construct label plus its variable bindings."""

    kind: str
    bindings: dict[str, Binding] = field(default_factory=dict)

    def bind(self, name: str, binding: Binding) -> None:
        self.bindings[name] = binding


class ScopeStack:
    """
    Stack of scope frames for one analysis walk.

    Example:
        stack = ScopeStack()
        with stack.frame("with", dot=BoundTo("service")):
            stack.resolve(".", ("name",))  # "service.name"
    """

    def __init__(self, dot: Binding = ROOT_ALIAS, root: Binding = ROOT_ALIAS):
        """
        Initialize the stack with a single base frame.

        Params:
            dot: Initial binding of the implicit context
            root: Binding of the root variable `$`
        """
        self._frames: list[ScopeFrame] = [ScopeFrame("root", {DOT: dot, ROOT: root})]

    @property
    def depth(self) -> int:
        return len(self._frames)

    @property
    def top(self) -> ScopeFrame:
        return self._frames[-1]

    def push(self, kind: str, dot: Binding | None = None) -> ScopeFrame:
        """
        Push a new frame.

        Params:
            kind: Construct label for diagnostics
            dot: New binding of the implicit context, or None to inherit it

        Returns:
            The pushed frame
        """
        frame = ScopeFrame(kind)
        if dot is not None:
            frame.bind(DOT, dot)
        self._frames.append(frame)
        return frame

    def pop(self, kind: str | None = None) -> ScopeFrame:
        """
        Pop the top frame.

        Params:
            kind: When given, the label the popped frame must carry

        Raises:
            ScopeStackError: When popping the base frame or a frame of another kind
        """
        if len(self._frames) <= 1:
            raise ScopeStackError(1, 0, kind or "root")
        if kind is not None and self.top.kind != kind:
            raise ScopeStackError(self.depth, self.depth, f"{kind} (found {self.top.kind})")
        return self._frames.pop()

    @contextmanager
    def frame(self, kind: str, dot: Binding | None = None) -> Iterator[ScopeFrame]:
        """
        Push a frame for the duration of a construct.

        Raises:
            ScopeStackError: If the construct left the stack at another depth
        """
        expected = self.depth + 1
        pushed = self.push(kind, dot)
        try:
            yield pushed
        finally:
            if self.depth != expected or self.top is not pushed:
                raise ScopeStackError(expected, self.depth, kind)
            self.pop(kind)

    def lookup(self, name: str) -> Binding | None:
        """Return the innermost binding of name, if any."""
        for frame in reversed(self._frames):
            binding = frame.bindings.get(name)
            if binding is not None:
                return binding
        return None

    def declare(self, name: str, binding: Binding) -> None:
        """Bind name in the innermost frame (`$x := ...`)."""
        self.top.bind(name, binding)

    def assign(self, name: str, binding: Binding) -> None:
        """Rebind name in the frame that owns it (`$x = ...`)."""
        for frame in reversed(self._frames):
            if name in frame.bindings:
                frame.bind(name, binding)
                return
        self.declare(name, binding)

    def resolve(self, base: str, steps: tuple[str, ...]) -> str | None:
        """
        Resolve a field-access chain to a canonical path.

        Params:
            base: "." or a variable name
            steps: Literal field names

        Returns:
            The canonical path, or None when the base is unknown, dynamic or
            an element binding, or the path would be empty
        """
        binding = self.lookup(base)
        if binding is None:
            return None
        path = binding.resolve(steps)
        return path or None
