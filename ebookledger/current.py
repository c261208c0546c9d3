from contextvars import ContextVar
from typing import ClassVar, List, Type, TypeVar

T = TypeVar("T", bound="Current")


class Current:
    """Mixin giving a class a contextual 'current' instance.

    ``with obj:`` makes ``obj`` current for the block. Outside any block,
    ``cls.current()`` builds one with ``cls.default()`` and keeps it.
    """

    CURRENT: ClassVar[ContextVar]
    _tokens: List

    @classmethod
    def default(cls):
        raise NotImplementedError(f"{cls.__qualname__}.default() is not implemented.")

    def __init_subclass__(cls, **kwargs):
        # each subclass gets its own slot, so Settings and BookRegistry don't collide.
        super().__init_subclass__(**kwargs)
        cls.CURRENT = ContextVar(cls.__qualname__ + ".CURRENT")

    def __enter__(self):
        if not hasattr(self, "_tokens"):
            self._tokens = []
        self._tokens.append(type(self).CURRENT.set(self))
        return self

    def __exit__(self, *exc):
        type(self).CURRENT.reset(self._tokens.pop())

    @classmethod
    def current(cls: Type[T]) -> T:
        c = cls.CURRENT.get(None)
        if c is None:
            try:
                c = cls.default()
            except NotImplementedError:
                c = cls()
            cls.CURRENT.set(c)
        return c
